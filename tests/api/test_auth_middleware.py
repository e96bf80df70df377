"""Tests for optional API-key auth middleware behavior.

Includes rate limiting and key strength validation.
"""

from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

import src.api.middleware.auth as auth_mod
from src.api.middleware.auth import (
    _AUTH_FAIL_MAX,
    _get_client_ip,
    reset_rate_limiter,
    should_authenticate,
    validate_api_key_strength,
)

API_KEY = "k" * 32 + "-service-key"


def test_api_auth_disabled_by_default(client: TestClient):
    response = client.get("/api/conversations")
    assert response.status_code == 200


def test_api_auth_enforced_when_key_is_set(client: TestClient, monkeypatch):
    monkeypatch.setenv("INFRAFLOW_API_KEY", API_KEY)

    response = client.get("/api/conversations")
    assert response.status_code == 401
    assert response.json() == {"detail": "Invalid or missing API key"}

    response = client.get("/api/conversations", headers={"X-API-Key": "wrong"})
    assert response.status_code == 401

    response = client.get("/api/conversations", headers={"X-API-Key": API_KEY})
    assert response.status_code == 200


def test_bearer_credential_is_not_the_api_key(client: TestClient, monkeypatch):
    """The backend credential in Authorization does not satisfy auth."""
    monkeypatch.setenv("INFRAFLOW_API_KEY", API_KEY)

    response = client.get(
        "/api/conversations", headers={"Authorization": f"Bearer {API_KEY}"}
    )
    assert response.status_code == 401


def test_health_is_public(client: TestClient, monkeypatch):
    monkeypatch.setenv("INFRAFLOW_API_KEY", API_KEY)

    assert client.get("/health").status_code == 200


@pytest.mark.parametrize("path,expected", [
    ("/api/conversations", True),
    ("/api/plans/p1", True),
    ("/health", False),
    ("/docs", False),
    ("/openapi.json", False),
    ("/other", False),
])
def test_should_authenticate(path, expected):
    assert should_authenticate(path) is expected


class TestApiKeyStrength:
    """Tests for API key minimum length validation."""

    def test_short_api_key_rejected_at_startup(self, monkeypatch):
        """Keys shorter than 32 characters raise ValueError."""
        monkeypatch.setenv("INFRAFLOW_API_KEY", "too-short")
        with pytest.raises(ValueError, match="too short"):
            validate_api_key_strength()

    def test_valid_length_api_key_accepted(self, monkeypatch):
        """Keys of 32+ characters pass validation."""
        monkeypatch.setenv("INFRAFLOW_API_KEY", "a" * 32)
        validate_api_key_strength()

    def test_empty_api_key_skips_validation(self, monkeypatch):
        """Unset key (auth disabled) passes validation."""
        monkeypatch.delenv("INFRAFLOW_API_KEY", raising=False)
        validate_api_key_strength()


class TestAuthRateLimit:
    """Tests for auth failure rate limiting."""

    def test_blocks_after_max_attempts(self, client: TestClient, monkeypatch):
        """After _AUTH_FAIL_MAX bad attempts, returns 429."""
        monkeypatch.setenv("INFRAFLOW_API_KEY", API_KEY)

        for _ in range(_AUTH_FAIL_MAX):
            resp = client.get("/api/conversations", headers={"X-API-Key": "wrong-key"})
            assert resp.status_code == 401

        resp = client.get("/api/conversations", headers={"X-API-Key": "wrong-key"})
        assert resp.status_code == 429
        assert "too many" in resp.json()["detail"].lower()

    def test_resets_after_window(self, client: TestClient, monkeypatch):
        """Rate limit resets after clearing the failure records."""
        monkeypatch.setenv("INFRAFLOW_API_KEY", API_KEY)
        for _ in range(_AUTH_FAIL_MAX):
            client.get("/api/conversations", headers={"X-API-Key": "wrong-key"})
        assert client.get(
            "/api/conversations", headers={"X-API-Key": "wrong-key"}
        ).status_code == 429

        reset_rate_limiter()

        resp = client.get("/api/conversations", headers={"X-API-Key": "wrong-key"})
        assert resp.status_code == 401


class TestTrustedProxyConfig:
    """Tests for X-Forwarded-For trust configuration."""

    def test_ignores_xff_by_default(self, monkeypatch):
        """Without INFRAFLOW_TRUST_PROXY, X-Forwarded-For is ignored."""
        monkeypatch.setattr(auth_mod, "_TRUST_PROXY", False)
        request = MagicMock()
        request.headers = {"X-Forwarded-For": "1.2.3.4"}
        request.client.host = "127.0.0.1"

        assert _get_client_ip(request) == "127.0.0.1"

    def test_uses_xff_when_trusted(self, monkeypatch):
        """With INFRAFLOW_TRUST_PROXY on, the first forwarded address is used."""
        monkeypatch.setattr(auth_mod, "_TRUST_PROXY", True)
        request = MagicMock()
        request.headers = {"X-Forwarded-For": "1.2.3.4, 5.6.7.8"}
        request.client.host = "127.0.0.1"

        assert _get_client_ip(request) == "1.2.3.4"
