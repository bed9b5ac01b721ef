from __future__ import annotations

from typing import Optional

import httpx
from fastapi import Depends, Header, HTTPException, Request, status

from qbo_bridge.core.config import Settings, get_settings
from qbo_bridge.services.auth import QuickBooksOAuthClient, TokenStore
from qbo_bridge.services.custom_field_validation import CustomFieldValidationService, DefinitionCache
from qbo_bridge.services.custom_fields import CustomFieldsService
from qbo_bridge.services.entities import CustomerService, InvoiceService, ItemService
from qbo_bridge.services.qbo_client import QuickBooksService


async def enforce_api_key(
    api_key_header: str | None = Header(default=None, alias="X-API-Key"),
    settings: Settings = Depends(get_settings),
) -> None:
    if not settings.api_key:
        return
    if api_key_header is None or api_key_header != settings.api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key",
        )


def get_token_store(request: Request) -> TokenStore:
    return request.app.state.token_store


def get_upstream_transport(request: Request) -> Optional[httpx.AsyncBaseTransport]:
    return request.app.state.upstream_transport


def get_definition_cache(request: Request) -> DefinitionCache:
    return request.app.state.definition_cache


async def require_authenticated(token_store: TokenStore = Depends(get_token_store)) -> None:
    if not token_store.can_authorize():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )


def get_oauth_client(
    token_store: TokenStore = Depends(get_token_store),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_upstream_transport),
    settings: Settings = Depends(get_settings),
) -> QuickBooksOAuthClient:
    return QuickBooksOAuthClient(token_store, settings, transport)


def get_custom_fields_service(
    oauth: QuickBooksOAuthClient = Depends(get_oauth_client),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_upstream_transport),
    settings: Settings = Depends(get_settings),
) -> CustomFieldsService:
    return CustomFieldsService(oauth, settings, transport)


def get_validation_service(
    cache: DefinitionCache = Depends(get_definition_cache),
) -> CustomFieldValidationService:
    return CustomFieldValidationService(cache)


def get_qbo_service(
    oauth: QuickBooksOAuthClient = Depends(get_oauth_client),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_upstream_transport),
    settings: Settings = Depends(get_settings),
) -> QuickBooksService:
    return QuickBooksService(oauth, settings, transport)


def get_customer_service(
    qbo: QuickBooksService = Depends(get_qbo_service),
    validation: CustomFieldValidationService = Depends(get_validation_service),
) -> CustomerService:
    return CustomerService(qbo, validation)


def get_item_service(
    qbo: QuickBooksService = Depends(get_qbo_service),
    validation: CustomFieldValidationService = Depends(get_validation_service),
) -> ItemService:
    return ItemService(qbo, validation)


def get_invoice_service(
    qbo: QuickBooksService = Depends(get_qbo_service),
    validation: CustomFieldValidationService = Depends(get_validation_service),
) -> InvoiceService:
    return InvoiceService(qbo, validation)
