from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional, Sequence

from qbo_bridge.core import logging as logging_utils
from qbo_bridge.schemas.custom_fields import CustomFieldInput
from qbo_bridge.schemas.qbo import InvoiceLineItem
from qbo_bridge.services.custom_field_validation import CustomFieldValidationService
from qbo_bridge.services.qbo_client import QuickBooksApiError, QuickBooksService


class EntityRequestError(ValueError):
    pass


@dataclass
class EntityResult:
    data: dict[str, Any]
    refreshed: bool
    latency_ms: float
    corrected: list[str] = field(default_factory=list)


def guard_additional_data(
    additional_data: Mapping[str, Any],
    protected_fields: Iterable[str],
    *,
    managed_internally: bool = False,
) -> None:
    if "CustomField" in additional_data:
        raise EntityRequestError(
            "CustomField should not be in additionalData. Use the customFields parameter instead."
        )
    suffix = (
        "This field is managed internally."
        if managed_internally
        else "Use the method parameters instead."
    )
    for key in protected_fields:
        if key in additional_data:
            raise EntityRequestError(f"{key} should not be in additionalData. {suffix}")


class _EntityService:
    entity: str = ""
    resource: str = ""

    def __init__(self, qbo: QuickBooksService, validation: CustomFieldValidationService):
        self.qbo = qbo
        self.validation = validation

    async def get(self, entity_id: str) -> EntityResult:
        data, refreshed, latency_ms = await self.qbo.read(self.resource, entity_id)
        return EntityResult(data=data, refreshed=refreshed, latency_ms=latency_ms)

    async def _submit(
        self,
        body: dict[str, Any],
        custom_fields: Sequence[CustomFieldInput],
        additional_data: Mapping[str, Any],
        *,
        action: str,
    ) -> EntityResult:
        payloads, result = await self.validation.prepare_payloads(custom_fields)
        if payloads:
            body["CustomField"] = payloads
        body.update(additional_data)
        logging_utils.log_entity_request(entity=self.entity, action=action, payload=body)
        data, refreshed, latency_ms = await self.qbo.post(self.resource, body)
        return EntityResult(
            data=data,
            refreshed=refreshed,
            latency_ms=latency_ms,
            corrected=list(result.corrected),
        )

    async def _update(
        self,
        entity_id: str,
        custom_fields: Sequence[CustomFieldInput],
        additional_data: Mapping[str, Any],
    ) -> EntityResult:
        existing, _, _ = await self.qbo.read(self.resource, entity_id, include_custom_fields=False)
        record = existing.get(self.entity) or {}
        sync_token = record.get("SyncToken")
        if sync_token is None:
            raise QuickBooksApiError(f"Could not retrieve {self.resource} SyncToken")
        guard_additional_data(additional_data, ("Id", "SyncToken"), managed_internally=True)
        body: dict[str, Any] = {"Id": entity_id, "SyncToken": sync_token}
        return await self._submit(body, custom_fields, additional_data, action="update")


class CustomerService(_EntityService):
    entity = "Customer"
    resource = "customer"

    async def create(
        self,
        display_name: str,
        custom_fields: Sequence[CustomFieldInput] = (),
        additional_data: Optional[Mapping[str, Any]] = None,
    ) -> EntityResult:
        additional_data = additional_data or {}
        guard_additional_data(additional_data, ("DisplayName",))
        body: dict[str, Any] = {"DisplayName": display_name}
        return await self._submit(body, custom_fields, additional_data, action="create")

    async def update(
        self,
        customer_id: str,
        custom_fields: Sequence[CustomFieldInput] = (),
        additional_data: Optional[Mapping[str, Any]] = None,
    ) -> EntityResult:
        return await self._update(customer_id, custom_fields, additional_data or {})


class ItemService(_EntityService):
    entity = "Item"
    resource = "item"

    async def create(
        self,
        name: str,
        item_type: str = "Service",
        custom_fields: Sequence[CustomFieldInput] = (),
        additional_data: Optional[Mapping[str, Any]] = None,
    ) -> EntityResult:
        additional_data = additional_data or {}
        guard_additional_data(additional_data, ("Name", "Type"))
        body: dict[str, Any] = {"Name": name, "Type": item_type}
        return await self._submit(body, custom_fields, additional_data, action="create")

    async def update(
        self,
        item_id: str,
        custom_fields: Sequence[CustomFieldInput] = (),
        additional_data: Optional[Mapping[str, Any]] = None,
    ) -> EntityResult:
        return await self._update(item_id, custom_fields, additional_data or {})


def build_invoice_lines(line_items: Iterable[InvoiceLineItem]) -> list[dict[str, Any]]:
    lines: list[dict[str, Any]] = []
    for item in line_items:
        detail: dict[str, Any] = {"ItemRef": {"value": item.item_id}}
        if item.quantity is not None:
            detail["Qty"] = float(item.quantity)
        line: dict[str, Any] = {
            "Amount": float(item.amount),
            "DetailType": "SalesItemLineDetail",
            "SalesItemLineDetail": detail,
        }
        if item.description is not None:
            line["Description"] = item.description
        lines.append(line)
    return lines


class InvoiceService(_EntityService):
    entity = "Invoice"
    resource = "invoice"
    COST_OF_FUEL_LINE_AMOUNT = 100.00

    async def create(
        self,
        customer_id: str,
        line_items: Sequence[InvoiceLineItem],
        custom_fields: Sequence[CustomFieldInput] = (),
        additional_data: Optional[Mapping[str, Any]] = None,
    ) -> EntityResult:
        additional_data = additional_data or {}
        if not line_items:
            raise EntityRequestError("At least one line item is required")
        guard_additional_data(additional_data, ("Line", "CustomerRef"))
        body: dict[str, Any] = {
            "Line": build_invoice_lines(line_items),
            "CustomerRef": {"value": customer_id},
        }
        return await self._submit(body, custom_fields, additional_data, action="create")

    async def create_with_cost_of_fuel(
        self,
        definition_id: str,
        customer_id: str,
        item_id: str,
        fuel_cost: float,
        field_type: str = "NUMBER",
    ) -> EntityResult:
        body: dict[str, Any] = {
            "Line": [
                {
                    "Amount": self.COST_OF_FUEL_LINE_AMOUNT,
                    "DetailType": "SalesItemLineDetail",
                    "SalesItemLineDetail": {"ItemRef": {"value": item_id}},
                }
            ],
            "CustomerRef": {"value": customer_id},
        }
        custom_field = CustomFieldInput(definition_id=definition_id, value=fuel_cost, type=field_type)
        return await self._submit(body, [custom_field], {}, action="create_cost_of_fuel")
