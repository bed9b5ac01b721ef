from __future__ import annotations

import json
import logging
from typing import Any, Optional
from urllib.parse import quote

import httpx

from qbo_bridge.core.config import Settings, get_settings
from qbo_bridge.core.http import get_async_client, response_json, timed_request
from qbo_bridge.core import logging as logging_utils
from qbo_bridge.services.auth import NotAuthenticatedError, QuickBooksOAuthClient


class QuickBooksApiError(RuntimeError):
    def __init__(self, message: str, status_code: Optional[int] = None, body: Optional[str] = None):
        self.status_code = status_code
        self.body = body
        super().__init__(message)


class QuickBooksService:
    SANDBOX_API_BASE = "https://sandbox-quickbooks.api.intuit.com"
    PROD_API_BASE = "https://quickbooks.api.intuit.com"

    def __init__(
        self,
        oauth: QuickBooksOAuthClient,
        settings: Settings | None = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.oauth = oauth
        self.settings = settings or get_settings()
        self.transport = transport
        self.logger = logging.getLogger("qbo_bridge.services.qbo")

    async def read(
        self,
        resource: str,
        entity_id: str,
        *,
        include_custom_fields: bool = True,
    ) -> tuple[dict[str, Any], bool, float]:
        return await self._send(
            "GET",
            resource,
            entity_id=entity_id,
            include_custom_fields=include_custom_fields,
        )

    async def post(self, resource: str, payload: dict[str, Any]) -> tuple[dict[str, Any], bool, float]:
        return await self._send("POST", resource, payload=payload)

    def _build_url(self, realm_id: str, resource: str, entity_id: Optional[str] = None) -> str:
        base = self.settings.qbo_base_url
        if not base:
            base = self.SANDBOX_API_BASE if self.settings.environment == "sandbox" else self.PROD_API_BASE
        url = f"{base.rstrip('/')}/v3/company/{quote(realm_id, safe='')}/{resource}"
        if entity_id is not None:
            url = f"{url}/{quote(entity_id, safe='')}"
        return url

    def _build_params(self, include_custom_fields: bool) -> dict[str, str]:
        params = {"minorversion": self.settings.qbo_minor_version}
        if include_custom_fields:
            params["include"] = "enhancedAllCustomFields"
        return params

    async def _send(
        self,
        method: str,
        resource: str,
        *,
        entity_id: Optional[str] = None,
        payload: Optional[dict[str, Any]] = None,
        include_custom_fields: bool = True,
    ) -> tuple[dict[str, Any], bool, float]:
        token, realm_id, refreshed = await self.oauth.ensure_access_token()
        url = self._build_url(realm_id, resource, entity_id)
        params = self._build_params(include_custom_fields)
        headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        operation = f"{method.lower()}_{resource}"

        async with get_async_client(self.settings, self.transport) as client:
            try:
                response, latency_ms = await timed_request(
                    client,
                    method,
                    url,
                    params=params,
                    json=payload,
                    headers=headers.copy(),
                )
                if response.status_code == 401 and self.oauth.token_store.bundle is not None:
                    self.logger.warning(
                        "qbo_unauthorized",
                        extra={"resource": resource, "realm_id": realm_id},
                    )
                    try:
                        bundle = await self.oauth.refresh_tokens()
                    except NotAuthenticatedError:
                        bundle = None
                    if bundle is not None:
                        refreshed = True
                        headers["Authorization"] = f"Bearer {bundle.access_token}"
                        response, latency_ms = await timed_request(
                            client,
                            method,
                            url,
                            params=params,
                            json=payload,
                            headers=headers.copy(),
                        )
            except httpx.HTTPError as exc:
                raise QuickBooksApiError(f"QBO request failed for {resource}: {exc}") from exc

        data = response_json(response)
        if response.status_code >= 400 or "Fault" in data:
            body = json.dumps(data["Fault"]) if "Fault" in data else response.text
            logging_utils.log_upstream_call(
                service="qbo",
                operation=operation,
                status_code=response.status_code,
                latency_ms=latency_ms,
                result="failure",
                error_message=body,
            )
            raise QuickBooksApiError(
                f"QBO error for {resource}: {response.status_code} {body}",
                status_code=response.status_code,
                body=body,
            )

        logging_utils.log_upstream_call(
            service="qbo",
            operation=operation,
            status_code=response.status_code,
            latency_ms=latency_ms,
            result="success",
        )
        return data, refreshed, latency_ms
