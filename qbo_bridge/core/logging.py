from __future__ import annotations

import logging
import logging.config
from contextvars import ContextVar
from typing import Any, Optional

from pythonjsonlogger import jsonlogger


request_id_ctx: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
realm_id_ctx: ContextVar[Optional[str]] = ContextVar("realm_id", default=None)


class RequestContextFilter(logging.Filter):
    """Injects request scoped context variables into each log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_ctx.get()
        record.realm_id = realm_id_ctx.get()
        return True


def configure_logging(level: str | int = logging.INFO) -> None:
    """Configure JSON structured logging.

    Requests are logged as ``request_completed`` by the request middleware,
    so uvicorn's access logger only passes warnings.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": {
                "request_context": {"()": RequestContextFilter},
            },
            "formatters": {
                "json": {
                    "()": jsonlogger.JsonFormatter,
                    "fmt": "%(asctime)s %(levelname)s %(name)s %(message)s %(request_id)s %(realm_id)s",
                }
            },
            "handlers": {
                "stdout": {
                    "class": "logging.StreamHandler",
                    "stream": "ext://sys.stdout",
                    "formatter": "json",
                    "filters": ["request_context"],
                }
            },
            "root": {"handlers": ["stdout"], "level": level},
            "loggers": {
                "uvicorn.access": {"level": logging.WARNING},
                "httpx": {"level": logging.WARNING},
            },
        }
    )


def set_request_context(
    request_id: Optional[str] = None,
    realm_id: Optional[str] = None,
) -> None:
    if request_id is not None:
        request_id_ctx.set(request_id)
    if realm_id is not None:
        realm_id_ctx.set(realm_id)


def clear_request_context() -> None:
    request_id_ctx.set(None)
    realm_id_ctx.set(None)


def _redact_value(value: Any) -> str:
    if value is None:
        return ""
    return "***redacted***"


def sanitize_payload(payload: Any) -> Any:
    """Remove obvious secrets from a payload while keeping business fields."""

    sensitive_keys = {
        "authorization",
        "access_token",
        "refresh_token",
        "id_token",
        "token",
        "secret",
        "password",
    }

    def _sanitize(value: Any) -> Any:
        if isinstance(value, dict):
            sanitized: dict[str, Any] = {}
            for key, val in value.items():
                key_lower = str(key).lower()
                if any(token in key_lower for token in sensitive_keys):
                    sanitized[key] = _redact_value(val)
                else:
                    sanitized[key] = _sanitize(val)
            return sanitized
        if isinstance(value, list):
            return [_sanitize(item) for item in value]
        return value

    return _sanitize(payload)


def log_upstream_call(
    *,
    service: str,
    operation: str,
    status_code: Optional[int],
    latency_ms: Optional[float],
    result: str,
    error_message: Optional[str] = None,
) -> None:
    logger = logging.getLogger("qbo_bridge.upstream")
    log = logger.info if result == "success" else logger.warning
    log(
        "upstream_call_finished",
        extra={
            "event": "upstream_call_finished",
            "request_id": request_id_ctx.get(),
            "realm_id": realm_id_ctx.get(),
            "service": service,
            "operation": operation,
            "status_code": status_code,
            "latency_ms": None if latency_ms is None else round(latency_ms, 2),
            "result": result,
            "error_message": error_message,
        },
    )


def log_entity_request(*, entity: str, action: str, payload: Any) -> None:
    logger = logging.getLogger("qbo_bridge.entities")
    logger.info(
        "entity_request_prepared",
        extra={
            "event": "entity_request_prepared",
            "request_id": request_id_ctx.get(),
            "realm_id": realm_id_ctx.get(),
            "entity": entity,
            "action": action,
            "payload": sanitize_payload(payload),
        },
    )
