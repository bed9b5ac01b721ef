from __future__ import annotations

import json
import secrets
from functools import lru_cache
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken


OAUTH_STATE_MAX_AGE_SECONDS = 600


@lru_cache(maxsize=4)
def _get_cipher(key: str) -> Fernet:
    return Fernet(key.encode("utf-8"))


def mask_secret(value: Optional[str], visible: int = 4) -> str:
    if not value:
        return "[redacted]"
    trimmed = value.strip()
    if len(trimmed) <= visible:
        return "*" * len(trimmed)
    return f"{trimmed[:visible]}***"


def seal_oauth_state(key: str, nonce: Optional[str] = None) -> str:
    """Encrypt a one-off nonce into the ``state`` sent to Intuit.

    Fernet tokens carry their creation time, so the age check happens on open.
    """
    payload = {"nonce": nonce or secrets.token_urlsafe(16)}
    serialized = json.dumps(payload, separators=(",", ":")).encode("utf-8")
    return _get_cipher(key).encrypt(serialized).decode("utf-8")


def open_oauth_state(
    key: str,
    token: str,
    *,
    max_age_seconds: Optional[int] = OAUTH_STATE_MAX_AGE_SECONDS,
) -> str:
    """Return the nonce sealed in ``token``; raise ValueError if it is forged or stale."""
    try:
        decrypted = _get_cipher(key).decrypt(token.encode("utf-8"), ttl=max_age_seconds)
    except InvalidToken as exc:
        raise ValueError("Invalid or expired OAuth state") from exc
    try:
        data = json.loads(decrypted.decode("utf-8"))
    except ValueError as exc:
        raise ValueError("Invalid OAuth state payload") from exc
    nonce = data.get("nonce") if isinstance(data, dict) else None
    if not isinstance(nonce, str) or not nonce:
        raise ValueError("Invalid OAuth state payload")
    return nonce
