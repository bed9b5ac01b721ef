from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from qbo_bridge.core.config import Settings, get_settings
from qbo_bridge.core.http import get_async_client, response_json, timed_request
from qbo_bridge.core import logging as logging_utils
from qbo_bridge.services.auth import QuickBooksOAuthClient


DEFINITION_FIELDS = """
    id
    legacyIDV2
    label
    dataType
    active
    associations {
      associatedEntity
      active
      validationOptions {
        required
      }
      allowedOperations
      associationCondition
    }
    dropDownOptions {
      id
      value
      active
      order
    }
"""

GET_ALL_CUSTOM_FIELDS = (
    """
query GetCustomFieldDefinitions {
  appFoundationsCustomFieldDefinitions {
    edges {
      node {"""
    + DEFINITION_FIELDS
    + """        description
        customFieldDefinitionMetaModel {
          suggested
        }
      }
    }
  }
}
"""
)

CREATE_CUSTOM_FIELD = (
    """
mutation CreateCustomFieldDefinition($input: AppFoundations_CustomFieldDefinitionCreateInput!) {
  appFoundationsCreateCustomFieldDefinition(input: $input) {"""
    + DEFINITION_FIELDS
    + """  }
}
"""
)

UPDATE_CUSTOM_FIELD = (
    """
mutation UpdateCustomFieldDefinition($input: AppFoundations_CustomFieldDefinitionUpdateInput!) {
  appFoundationsUpdateCustomFieldDefinition(input: $input) {"""
    + DEFINITION_FIELDS
    + """  }
}
"""
)

_UPDATABLE_KEYS = (
    "label",
    "dataType",
    "active",
    "associations",
    "dropDownOptions",
    "description",
    "legacyIDV2",
)


class CustomFieldsGraphQLError(RuntimeError):
    def __init__(self, message: str, errors: Optional[list[Any]] = None, status_code: Optional[int] = None):
        self.errors = errors or []
        self.status_code = status_code
        super().__init__(message)


def build_create_variables(body: dict[str, Any]) -> dict[str, Any]:
    input_payload = {
        "label": body.get("label") or "",
        "dataType": body.get("dataType") or "STRING",
        "active": True if body.get("active") is None else body["active"],
        "associations": body.get("associations") or [],
        "dropDownOptions": body.get("dropDownOptions") or [],
        "description": body.get("description"),
    }
    return {"input": input_payload}


def build_update_variables(definition_id: str, body: dict[str, Any]) -> dict[str, Any]:
    input_payload: dict[str, Any] = {"id": definition_id}
    for key in _UPDATABLE_KEYS:
        value = body.get(key)
        if value is not None:
            input_payload[key] = value
    return {"input": input_payload}


def extract_definition_nodes(data: dict[str, Any]) -> list[dict[str, Any]]:
    connection = data.get("appFoundationsCustomFieldDefinitions") or {}
    nodes: list[dict[str, Any]] = []
    for edge in connection.get("edges") or []:
        node = (edge or {}).get("node")
        if isinstance(node, dict):
            nodes.append(node)
    return nodes


class CustomFieldsService:
    """App Foundations GraphQL client for custom field definitions."""

    def __init__(
        self,
        oauth: QuickBooksOAuthClient,
        settings: Settings | None = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.oauth = oauth
        self.settings = settings or get_settings()
        self.transport = transport
        self.logger = logging.getLogger("qbo_bridge.services.custom_fields")

    async def get_custom_fields(self) -> dict[str, Any]:
        return await self._execute(GET_ALL_CUSTOM_FIELDS, {}, operation="list_definitions")

    async def fetch_definitions(self) -> list[dict[str, Any]]:
        data = await self.get_custom_fields()
        nodes = extract_definition_nodes(data)
        self.logger.info(
            "custom_field_definitions_fetched",
            extra={"definition_count": len(nodes)},
        )
        return nodes

    async def create_custom_field(self, body: dict[str, Any]) -> dict[str, Any]:
        variables = build_create_variables(body)
        return await self._execute(CREATE_CUSTOM_FIELD, variables, operation="create_definition")

    async def update_custom_field(self, definition_id: str, body: dict[str, Any]) -> dict[str, Any]:
        variables = build_update_variables(definition_id, body)
        return await self._execute(UPDATE_CUSTOM_FIELD, variables, operation="update_definition")

    async def deactivate_custom_field(self, definition_id: str) -> dict[str, Any]:
        return await self.update_custom_field(definition_id, {"active": False})

    async def _execute(self, query: str, variables: dict[str, Any], *, operation: str) -> dict[str, Any]:
        token, realm_id, _ = await self.oauth.ensure_access_token()
        headers = {
            "Authorization": f"Bearer {token}",
            "intuit-realm-id": realm_id,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        async with get_async_client(self.settings, self.transport) as client:
            try:
                response, latency_ms = await timed_request(
                    client,
                    "POST",
                    self.settings.graphql_url,
                    json={"query": query, "variables": variables},
                    headers=headers,
                )
            except httpx.HTTPError as exc:
                raise CustomFieldsGraphQLError(f"GraphQL endpoint unreachable: {exc}") from exc

        body = response_json(response)
        errors = body.get("errors")
        if response.status_code >= 400 or errors:
            logging_utils.log_upstream_call(
                service="graphql",
                operation=operation,
                status_code=response.status_code,
                latency_ms=latency_ms,
                result="failure",
                error_message=str(errors) if errors else response.text,
            )
            if errors:
                raise CustomFieldsGraphQLError(
                    f"GraphQL error: {errors}",
                    errors=errors,
                    status_code=response.status_code,
                )
            raise CustomFieldsGraphQLError(
                f"GraphQL request failed with status {response.status_code}: {response.text}",
                status_code=response.status_code,
            )

        logging_utils.log_upstream_call(
            service="graphql",
            operation=operation,
            status_code=response.status_code,
            latency_ms=latency_ms,
            result="success",
        )
        return body.get("data") or {}
