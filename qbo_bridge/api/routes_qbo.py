from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, status

from qbo_bridge.api.deps import (
    get_customer_service,
    get_invoice_service,
    get_item_service,
    get_token_store,
    require_authenticated,
)
from qbo_bridge.schemas.qbo import (
    CostOfFuelInvoiceCreate,
    CustomerCreate,
    CustomerUpdate,
    InvoiceCreate,
    ItemCreate,
    ItemUpdate,
    QBOEntityResponse,
)
from qbo_bridge.services.auth import TokenStore
from qbo_bridge.services.entities import CustomerService, EntityResult, InvoiceService, ItemService


router = APIRouter(
    prefix="/api/quickbook",
    tags=["qbo"],
    dependencies=[Depends(require_authenticated)],
)
logger = logging.getLogger("qbo_bridge.api.qbo")


def _to_response(result: EntityResult, token_store: TokenStore) -> QBOEntityResponse:
    return QBOEntityResponse(
        realm_id=token_store.realm_id or "",
        fetched_at=datetime.now(timezone.utc),
        latency_ms=round(result.latency_ms, 2),
        data=result.data,
        refreshed=result.refreshed,
        corrected=result.corrected,
    )


@router.get("/customers/{customer_id}", response_model=QBOEntityResponse)
async def get_customer(
    customer_id: str,
    service: CustomerService = Depends(get_customer_service),
    token_store: TokenStore = Depends(get_token_store),
) -> QBOEntityResponse:
    result = await service.get(customer_id)
    return _to_response(result, token_store)


@router.post(
    "/customers",
    response_model=QBOEntityResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create Customer",
    description="Creates a customer; custom field types are corrected from their definitions before submission.",
)
async def create_customer(
    payload: CustomerCreate,
    service: CustomerService = Depends(get_customer_service),
    token_store: TokenStore = Depends(get_token_store),
) -> QBOEntityResponse:
    result = await service.create(
        payload.display_name,
        payload.custom_fields,
        payload.additional_data,
    )
    return _to_response(result, token_store)


@router.put("/customers/{customer_id}", response_model=QBOEntityResponse)
async def update_customer(
    customer_id: str,
    payload: CustomerUpdate,
    service: CustomerService = Depends(get_customer_service),
    token_store: TokenStore = Depends(get_token_store),
) -> QBOEntityResponse:
    result = await service.update(customer_id, payload.custom_fields, payload.additional_data)
    return _to_response(result, token_store)


@router.get("/items/{item_id}", response_model=QBOEntityResponse)
async def get_item(
    item_id: str,
    service: ItemService = Depends(get_item_service),
    token_store: TokenStore = Depends(get_token_store),
) -> QBOEntityResponse:
    result = await service.get(item_id)
    return _to_response(result, token_store)


@router.post("/items", response_model=QBOEntityResponse, status_code=status.HTTP_201_CREATED)
async def create_item(
    payload: ItemCreate,
    service: ItemService = Depends(get_item_service),
    token_store: TokenStore = Depends(get_token_store),
) -> QBOEntityResponse:
    result = await service.create(
        payload.name,
        payload.type,
        payload.custom_fields,
        payload.additional_data,
    )
    return _to_response(result, token_store)


@router.put("/items/{item_id}", response_model=QBOEntityResponse)
async def update_item(
    item_id: str,
    payload: ItemUpdate,
    service: ItemService = Depends(get_item_service),
    token_store: TokenStore = Depends(get_token_store),
) -> QBOEntityResponse:
    result = await service.update(item_id, payload.custom_fields, payload.additional_data)
    return _to_response(result, token_store)


@router.post("/invoices", response_model=QBOEntityResponse, status_code=status.HTTP_201_CREATED)
async def create_invoice(
    payload: InvoiceCreate,
    service: InvoiceService = Depends(get_invoice_service),
    token_store: TokenStore = Depends(get_token_store),
) -> QBOEntityResponse:
    result = await service.create(
        payload.customer_id,
        payload.line_items,
        payload.custom_fields,
        payload.additional_data,
    )
    return _to_response(result, token_store)


@router.post(
    "/invoices/cost-of-fuel",
    response_model=QBOEntityResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create Cost Of Fuel Invoice",
    description="Creates a single line invoice carrying the fuel cost in one custom field.",
)
async def create_cost_of_fuel_invoice(
    payload: CostOfFuelInvoiceCreate,
    service: InvoiceService = Depends(get_invoice_service),
    token_store: TokenStore = Depends(get_token_store),
) -> QBOEntityResponse:
    result = await service.create_with_cost_of_fuel(
        payload.definition_id,
        payload.customer_id,
        payload.item_id,
        payload.fuel_cost,
        payload.field_type,
    )
    return _to_response(result, token_store)
