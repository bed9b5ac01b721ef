from __future__ import annotations

from time import perf_counter
from typing import Any, Optional

import httpx

from qbo_bridge.core.config import Settings, get_settings


def get_async_client(
    settings: Settings | None = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    settings = settings or get_settings()
    timeout = httpx.Timeout(settings.http_timeout_seconds)
    return httpx.AsyncClient(timeout=timeout, transport=transport)


async def timed_request(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    **kwargs: Any,
) -> tuple[httpx.Response, float]:
    """Send a single request (no retries) and return it with its latency in ms."""
    start = perf_counter()
    response = await client.request(method, url, **kwargs)
    latency_ms = (perf_counter() - start) * 1000
    return response, latency_ms


def response_json(response: httpx.Response) -> dict[str, Any]:
    try:
        payload = response.json()
    except ValueError:
        return {}
    if not isinstance(payload, dict):
        return {}
    return payload
