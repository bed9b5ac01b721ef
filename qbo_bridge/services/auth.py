from __future__ import annotations

import base64
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import httpx

from qbo_bridge.core.config import Settings, get_settings
from qbo_bridge.core.http import get_async_client, response_json, timed_request
from qbo_bridge.core import logging as logging_utils
from qbo_bridge.core.security import mask_secret


class QuickBooksOAuthError(RuntimeError):
    pass


class NotAuthenticatedError(RuntimeError):
    def __init__(self, message: str = "Not authenticated"):
        super().__init__(message)


@dataclass
class TokenBundle:
    access_token: str
    refresh_token: Optional[str]
    access_expires_at: datetime
    refresh_expires_at: Optional[datetime]
    realm_id: Optional[str]
    token_type: str = "bearer"
    scopes: list[str] = field(default_factory=list)
    raw: dict[str, Any] = field(default_factory=dict)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class TokenStore:
    """Single tenant, in-process holder for the current OAuth tokens."""

    def __init__(self) -> None:
        self._bundle: Optional[TokenBundle] = None

    def set_bundle(self, bundle: TokenBundle) -> None:
        self._bundle = bundle

    def clear(self) -> None:
        self._bundle = None

    @property
    def bundle(self) -> Optional[TokenBundle]:
        return self._bundle

    @property
    def access_token(self) -> Optional[str]:
        return self._bundle.access_token if self._bundle else None

    @property
    def realm_id(self) -> Optional[str]:
        return self._bundle.realm_id if self._bundle else None

    def is_authenticated(self, now: Optional[datetime] = None) -> bool:
        bundle = self._bundle
        if bundle is None or not bundle.access_token:
            return False
        now = now or _now()
        return now < bundle.access_expires_at

    def can_authorize(self, now: Optional[datetime] = None) -> bool:
        """True when upstream calls can proceed, possibly after a token refresh."""
        if self.is_authenticated(now):
            return True
        bundle = self._bundle
        if bundle is None or not bundle.refresh_token:
            return False
        now = now or _now()
        return bundle.refresh_expires_at is None or now < bundle.refresh_expires_at

    def get_token(self) -> Optional[dict[str, Any]]:
        bundle = self._bundle
        if bundle is None:
            return None
        return {
            "access_token": bundle.access_token,
            "refresh_token": bundle.refresh_token,
            "expires_at": int(bundle.access_expires_at.timestamp()),
            "realm_id": bundle.realm_id,
            "raw": bundle.raw,
        }


class QuickBooksOAuthClient:
    AUTH_URL = "https://appcenter.intuit.com/connect/oauth2"
    TOKEN_URL = "https://oauth.platform.intuit.com/oauth2/v1/tokens/bearer"
    SCOPES = [
        "app-foundations.custom-field-definitions.read",
        "app-foundations.custom-field-definitions",
        "com.intuit.quickbooks.accounting",
        "openid",
        "profile",
        "email",
    ]
    DEFAULT_EXPIRES_IN = 3600
    REFRESH_THRESHOLD = timedelta(minutes=5)

    def __init__(
        self,
        token_store: TokenStore,
        settings: Settings | None = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.token_store = token_store
        self.settings = settings or get_settings()
        self.transport = transport
        self.logger = logging.getLogger("qbo_bridge.services.auth")

    def build_authorization_url(self, state: str) -> str:
        params = {
            "client_id": self.settings.qbo_client_id,
            "response_type": "code",
            "scope": " ".join(self.SCOPES),
            "redirect_uri": str(self.settings.qbo_redirect_uri),
            "state": state,
        }
        url = httpx.URL(self.AUTH_URL, params=params)
        self.logger.info(
            "oauth_authorization_url_generated",
            extra={"environment": self.settings.environment},
        )
        return str(url)

    async def exchange_authorization_code(self, *, code: str, realm_id: Optional[str]) -> TokenBundle:
        data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": str(self.settings.qbo_redirect_uri),
        }
        payload = await self._token_request(data, operation="exchange_code")
        bundle = self._parse_token_response(payload, realm_id)
        self.token_store.set_bundle(bundle)
        return bundle

    async def refresh_tokens(self) -> TokenBundle:
        current = self.token_store.bundle
        if current is None or not current.refresh_token:
            raise NotAuthenticatedError()
        data = {
            "grant_type": "refresh_token",
            "refresh_token": current.refresh_token,
        }
        payload = await self._token_request(data, operation="refresh")
        bundle = self._parse_token_response(payload, current.realm_id)
        self.token_store.set_bundle(bundle)
        self.logger.info("access_token_refreshed", extra={"realm_id": bundle.realm_id})
        return bundle

    async def ensure_access_token(self) -> tuple[str, str, bool]:
        """Return ``(access_token, realm_id, refreshed)``, refreshing when close to expiry."""
        bundle = self.token_store.bundle
        if bundle is None or not bundle.access_token or not bundle.realm_id:
            raise NotAuthenticatedError()
        refreshed = False
        if bundle.access_expires_at <= _now() + self.REFRESH_THRESHOLD and bundle.refresh_token:
            bundle = await self.refresh_tokens()
            refreshed = True
        if not self.token_store.is_authenticated():
            raise NotAuthenticatedError()
        logging_utils.set_request_context(realm_id=bundle.realm_id)
        return bundle.access_token, bundle.realm_id or "", refreshed

    async def _token_request(self, data: dict[str, str], *, operation: str) -> dict[str, Any]:
        headers = {
            "Authorization": self._basic_auth_header(),
            "Content-Type": "application/x-www-form-urlencoded",
            "Accept": "application/json",
        }
        async with get_async_client(self.settings, self.transport) as client:
            try:
                response, latency_ms = await timed_request(
                    client,
                    "POST",
                    self.TOKEN_URL,
                    data=data,
                    headers=headers,
                )
            except httpx.HTTPError as exc:
                raise QuickBooksOAuthError(f"Token endpoint unreachable: {exc}") from exc
        if response.status_code >= 400:
            logging_utils.log_upstream_call(
                service="oauth",
                operation=operation,
                status_code=response.status_code,
                latency_ms=latency_ms,
                result="failure",
                error_message=response.text,
            )
            raise QuickBooksOAuthError(
                f"Failed to obtain tokens from Intuit (status {response.status_code}): {response.text}"
            )
        logging_utils.log_upstream_call(
            service="oauth",
            operation=operation,
            status_code=response.status_code,
            latency_ms=latency_ms,
            result="success",
        )
        return response_json(response)

    def _parse_token_response(self, payload: dict[str, Any], realm_id: Optional[str]) -> TokenBundle:
        now = _now()
        access_token = payload.get("access_token")
        if not access_token:
            raise QuickBooksOAuthError("Incomplete token response")
        try:
            expires_in = int(payload.get("expires_in") or self.DEFAULT_EXPIRES_IN)
            refresh_expires_in = payload.get("x_refresh_token_expires_in")
            refresh_expires_at = (
                now + timedelta(seconds=int(refresh_expires_in))
                if refresh_expires_in is not None
                else None
            )
        except (TypeError, ValueError) as exc:
            raise QuickBooksOAuthError("Malformed token expiry in response") from exc

        scope_raw = payload.get("scope") or ""
        bundle = TokenBundle(
            access_token=access_token,
            refresh_token=payload.get("refresh_token"),
            access_expires_at=now + timedelta(seconds=expires_in),
            refresh_expires_at=refresh_expires_at,
            realm_id=realm_id,
            token_type=payload.get("token_type", "bearer"),
            scopes=[scope for scope in scope_raw.split() if scope],
            raw=payload,
        )
        self.logger.info(
            "token_bundle_parsed",
            extra={
                "realm_id": realm_id,
                "access_token_hint": mask_secret(access_token),
                "access_expires_at": bundle.access_expires_at.isoformat(),
            },
        )
        return bundle

    def _basic_auth_header(self) -> str:
        credentials = f"{self.settings.qbo_client_id}:{self.settings.qbo_client_secret}"
        encoded = base64.b64encode(credentials.encode("utf-8")).decode("utf-8")
        return f"Basic {encoded}"
