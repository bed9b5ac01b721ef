"""Shared fixtures for the qbo_bridge test suite.

Settings are read from the environment, so the required variables are set
before any ``qbo_bridge`` module is imported.
"""

import os
from datetime import datetime, timedelta, timezone

import httpx
import pytest
from cryptography.fernet import Fernet

os.environ.setdefault("QBO_CLIENT_ID", "test-client-id")
os.environ.setdefault("QBO_CLIENT_SECRET", "test-client-secret")
os.environ.setdefault("QBO_REDIRECT_URI", "http://localhost:8000/api/auth/callback")
os.environ.setdefault("FERNET_KEY", Fernet.generate_key().decode("utf-8"))
os.environ.setdefault("QBO_BASE_URL", "https://qbo.test")
os.environ.setdefault("APP_FOUNDATIONS_GRAPHQL_URL", "https://graphql.test/graphql")
os.environ.pop("API_KEY", None)

from qbo_bridge.schemas.custom_fields import CustomFieldDefinition  # noqa: E402
from qbo_bridge.services.auth import TokenBundle, TokenStore  # noqa: E402


def make_bundle(**overrides) -> TokenBundle:
    now = datetime.now(timezone.utc)
    values = {
        "access_token": "access-123",
        "refresh_token": "refresh-456",
        "access_expires_at": now + timedelta(hours=1),
        "refresh_expires_at": now + timedelta(days=100),
        "realm_id": "9130",
    }
    values.update(overrides)
    return TokenBundle(**values)


@pytest.fixture
def bundle_factory():
    return make_bundle


@pytest.fixture
def definition_nodes():
    """Raw GraphQL nodes as returned by the definitions query."""
    return [
        {"id": "djQ6MQ", "legacyIDV2": "42", "label": "Fuel", "dataType": "NUMBER", "active": True},
        {"id": "djQ6Mg", "legacyIDV2": "7", "label": "Region", "dataType": "string", "active": True},
        {
            "id": "djQ6Mw",
            "legacyIDV2": "9",
            "label": "Tier",
            "dataType": "DROPDOWN",
            "active": True,
            "dropDownOptions": [
                {"id": "1", "value": "A", "active": True, "order": 1},
                {"id": "2", "value": "B", "active": True, "order": 2},
            ],
        },
        {"id": "djQ6NA", "legacyIDV2": "11", "label": "Open", "dataType": "DROPDOWN", "active": True},
        {"id": "djQ6NQ", "legacyIDV2": "13", "label": "Old", "dataType": "STRING", "active": False},
        {"id": "djQ6Ng", "label": "No legacy id", "dataType": "STRING", "active": True},
    ]


@pytest.fixture
def definitions(definition_nodes):
    """Snapshot keyed by legacy id, as the cache would build it."""
    snapshot = {}
    for node in definition_nodes:
        definition = CustomFieldDefinition.model_validate(node)
        if definition.legacy_id:
            snapshot[definition.legacy_id] = definition
    return snapshot


@pytest.fixture
def token_store():
    store = TokenStore()
    store.set_bundle(make_bundle())
    return store


class RecordingHandler:
    """httpx.MockTransport handler that records requests and replays canned responses."""

    def __init__(self, routes=None):
        self.routes = routes or {}
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, request.url.path)
        responder = self.routes.get(key)
        if responder is None:
            return httpx.Response(404, json={"message": "unexpected request"})
        if callable(responder):
            return responder(request)
        status_code, body = responder
        return httpx.Response(status_code, json=body)


@pytest.fixture
def recording_handler():
    return RecordingHandler()


@pytest.fixture
def mock_transport(recording_handler):
    return httpx.MockTransport(recording_handler)
