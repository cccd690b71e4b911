"""Tests for X-API-Key authentication on the /v1 gate and ticket routes."""

from typing import Iterator
from unittest.mock import patch

import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient

from gatekeeper.core import dependencies
from gatekeeper.core.app_factory import create_app
from gatekeeper.core.auth import _matches_any, parse_api_keys, validate_api_key, verify_api_key
from gatekeeper.core.errors import AuthenticationAppError
from gatekeeper.core.logging import hash_subject

PROTECTED = [
    ("post", "/v1/gate/submissions/check", {"ip": "1.2.3.4", "require_challenge": False}),
    ("post", "/v1/gate/submissions/record", {"email": "a@b.com"}),
    ("post", "/v1/gate/verification/check", {"ip": "1.2.3.4"}),
    ("post", "/v1/gate/users/9/actions/export/check", None),
    ("post", "/v1/tickets/1", {"codes": ["T1"]}),
    ("get", "/v1/tickets/1", None),
    ("post", "/v1/tickets/1/consume", {"code": "T1"}),
    ("get", "/v1/challenge", None),
]


@pytest.fixture
def client() -> Iterator[TestClient]:
    dependencies.reset_dependencies()
    yield TestClient(create_app())
    dependencies.reset_dependencies()


def _call(client: TestClient, method: str, url: str, body, headers: dict):
    if method == "get":
        return client.get(url, headers=headers)
    return client.post(url, json=body, headers=headers)


@pytest.mark.parametrize(("method", "url", "body"), PROTECTED)
def test_routes_reject_missing_key(client, method: str, url: str, body) -> None:
    resp = _call(client, method, url, body, {})

    assert resp.status_code == 403
    assert resp.json()["detail"] == "Missing API key. Provide X-API-Key header."


@pytest.mark.parametrize(("method", "url", "body"), PROTECTED)
def test_routes_reject_wrong_key(client, method: str, url: str, body) -> None:
    resp = _call(client, method, url, body, {"X-API-Key": "test-api-key-12"})

    assert resp.status_code == 403
    assert resp.json()["detail"] == "Invalid or missing API key"


@pytest.mark.parametrize("key", ["test-api-key-123", "test-api-key-456"])
@pytest.mark.parametrize(("method", "url", "body"), PROTECTED)
def test_routes_accept_any_configured_key(client, method: str, url: str, body, key: str) -> None:
    resp = _call(client, method, url, body, {"X-API-Key": key})

    assert resp.status_code == 200


def test_routes_open_when_auth_disabled(client) -> None:
    with patch("gatekeeper.core.auth.settings") as mock_settings:
        mock_settings.app.api_key_required = False
        resp = client.get("/v1/tickets/1")

    assert resp.status_code == 200


def test_health_is_not_protected(client) -> None:
    assert client.get("/health").status_code == 200


def test_parse_api_keys_trims_and_deduplicates() -> None:
    assert parse_api_keys(" k1 , k2,k1 ,, ") == {"k1", "k2"}
    assert parse_api_keys(None) == set()


class TestMatchesAny:
    def test_exact_match_only(self) -> None:
        keys = {"alpha-key", "beta-key"}

        assert _matches_any("beta-key", keys) is True
        assert _matches_any("beta-ke", keys) is False
        assert _matches_any("beta-key-", keys) is False
        assert _matches_any("BETA-KEY", keys) is False

    def test_compares_against_every_key(self) -> None:
        keys = {"k1", "k2", "k3"}

        with patch("gatekeeper.core.auth.hmac.compare_digest", return_value=False) as compare:
            assert _matches_any("k1", keys) is False

        assert compare.call_count == len(keys)

    def test_non_ascii_key(self) -> None:
        assert _matches_any("chave-ção", {"chave-ção"}) is True
        assert _matches_any("chave-cao", {"chave-ção"}) is False


class TestValidateAPIKey:
    @patch("gatekeeper.core.auth.settings")
    def test_no_keys_configured(self, mock_settings) -> None:
        mock_settings.app.api_key_required = True
        mock_settings.app.api_keys = " , "

        with pytest.raises(AuthenticationAppError) as exc_info:
            validate_api_key("some-key")

        assert exc_info.value.code == "api_keys_not_configured"
        assert "APP_API_KEYS" in exc_info.value.details["hint"]

    @patch("gatekeeper.core.auth.settings")
    def test_empty_key_is_invalid(self, mock_settings) -> None:
        mock_settings.app.api_key_required = True
        mock_settings.app.api_keys = "valid-key"

        with pytest.raises(AuthenticationAppError) as exc_info:
            validate_api_key("")

        assert exc_info.value.code == "invalid_api_key"


@pytest.mark.asyncio
@patch("gatekeeper.core.auth.settings")
async def test_unconfigured_keys_surface_as_403(mock_settings) -> None:
    mock_settings.app.api_key_required = True
    mock_settings.app.api_keys = None

    with pytest.raises(HTTPException) as exc_info:
        await verify_api_key(x_api_key="some-key")

    assert exc_info.value.status_code == 403
    assert "no valid keys are configured" in exc_info.value.detail


@patch("gatekeeper.core.auth.logger")
@patch("gatekeeper.core.auth.settings")
def test_rejected_key_is_logged_as_hash(mock_settings, mock_logger) -> None:
    mock_settings.app.api_key_required = True
    mock_settings.app.api_keys = "valid-key"

    with pytest.raises(AuthenticationAppError):
        validate_api_key("leaked-key")

    extra = mock_logger.warning.call_args.kwargs["extra"]
    assert extra["api_key_hash"] == hash_subject("leaked-key")
    assert "leaked-key" not in str(extra)
