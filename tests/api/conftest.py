"""Pytest fixtures for API tests.

Provides an app wired to a coordinator around scripted backends, and a
TestClient that runs the app lifespan.
"""

from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient

from src.api.main import create_app
from src.api.middleware.auth import reset_rate_limiter
from tests.helpers import (
    ScriptedChatBackend,
    ScriptedProvisioningBackend,
    ScriptedToolBackend,
)


@pytest.fixture(autouse=True)
def _no_api_key(monkeypatch):
    """Run API tests with auth disabled unless a test opts in."""
    monkeypatch.delenv("INFRAFLOW_API_KEY", raising=False)
    reset_rate_limiter()
    yield
    reset_rate_limiter()


@pytest.fixture
def api_chat() -> ScriptedChatBackend:
    return ScriptedChatBackend()


@pytest.fixture
def api_provisioning() -> ScriptedProvisioningBackend:
    return ScriptedProvisioningBackend()


@pytest.fixture
def api_coordinator(make_coordinator, api_chat, api_provisioning):
    """Coordinator behind the test app."""
    return make_coordinator(
        chat=api_chat,
        tools=ScriptedToolBackend(steps=3),
        provisioning=api_provisioning,
    )


@pytest.fixture
def client(api_coordinator) -> Generator[TestClient, None, None]:
    """Create a TestClient around the injected coordinator.

    Yields:
        TestClient with the lifespan running.
    """
    app = create_app(coordinator=api_coordinator)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def conversation_id(client: TestClient) -> str:
    """ID of a freshly created conversation."""
    resp = client.post(
        "/api/conversations", json={"workspace_id": "ws-1", "user_id": "user-1"}
    )
    assert resp.status_code == 201
    return resp.json()["id"]
