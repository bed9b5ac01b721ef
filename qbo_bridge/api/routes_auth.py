from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import RedirectResponse

from qbo_bridge.api.deps import get_oauth_client, get_token_store
from qbo_bridge.core.config import Settings, get_settings
from qbo_bridge.core import logging as logging_utils
from qbo_bridge.core.security import open_oauth_state, seal_oauth_state
from qbo_bridge.services.auth import QuickBooksOAuthClient, QuickBooksOAuthError, TokenStore


router = APIRouter(prefix="/api/auth", tags=["auth"])
public_router = APIRouter(prefix="/api/auth", tags=["auth"])
logger = logging.getLogger("qbo_bridge.api.auth")


@router.get("/login", status_code=status.HTTP_307_TEMPORARY_REDIRECT)
async def login(
    settings: Settings = Depends(get_settings),
    oauth: QuickBooksOAuthClient = Depends(get_oauth_client),
):
    state = seal_oauth_state(settings.fernet_key)
    auth_url = oauth.build_authorization_url(state)
    logger.info("oauth_login_redirect", extra={"environment": settings.environment})
    return RedirectResponse(auth_url, status_code=status.HTTP_307_TEMPORARY_REDIRECT)


@public_router.get("/callback")
async def oauth_callback(
    code: Optional[str] = Query(default=None),
    state: Optional[str] = Query(default=None),
    realmId: Optional[str] = Query(default=None),
    error: Optional[str] = Query(default=None),
    error_description: Optional[str] = Query(default=None),
    settings: Settings = Depends(get_settings),
    oauth: QuickBooksOAuthClient = Depends(get_oauth_client),
):
    if error:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"OAuth error: {error_description or error}",
        )
    if not code:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing authorisation code.",
        )
    if not state:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing required OAuth parameters",
        )

    try:
        open_oauth_state(settings.fernet_key, state)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc

    try:
        bundle = await oauth.exchange_authorization_code(code=code, realm_id=realmId)
    except QuickBooksOAuthError as exc:
        logger.error("oauth_exchange_failed", extra={"realm_id": realmId})
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to exchange authorization code",
        ) from exc

    logging_utils.set_request_context(realm_id=realmId)
    logger.info(
        "oauth_callback_completed",
        extra={
            "realm_id": realmId,
            "access_expires_at": bundle.access_expires_at.isoformat(),
        },
    )
    return RedirectResponse("/", status_code=status.HTTP_302_FOUND)


@router.post("/retrieveToken")
async def retrieve_token(token_store: TokenStore = Depends(get_token_store)):
    token = token_store.get_token()
    if token is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    return {"token": token}
