"""HTTP tests for the gate, challenge and ticket endpoints."""

from unittest.mock import Mock

import pytest
from fastapi.testclient import TestClient

from gatekeeper.adapters.counter_store.in_memory import InMemoryCounterStore
from gatekeeper.adapters.settings import StaticSettingsProvider
from gatekeeper.adapters.tickets import InMemoryTicketPool
from gatekeeper.core import dependencies
from gatekeeper.core.app_factory import create_app
from gatekeeper.core.config import ChallengeSettings
from gatekeeper.core.errors import StoreUnavailableError
from gatekeeper.schemas.rate_limit import IPLimitSettings, RateLimitSettings, SubjectListSettings
from gatekeeper.services.access_restriction import AccessRestrictionChecker
from gatekeeper.services.challenge_service import ChallengeService
from gatekeeper.services.gatekeeper import SubmissionGatekeeper
from gatekeeper.services.rate_limiter import RateLimiter

HEADERS = {"X-API-Key": "test-api-key-123"}


@pytest.fixture
def snapshot() -> RateLimitSettings:
    return RateLimitSettings(
        ip=IPLimitSettings(max_per_hour=2, cooldown_seconds=0),
        blacklist=SubjectListSettings(ips=["10.0.0.1"]),
    )


@pytest.fixture
def wiring(snapshot):
    clock = Mock(return_value=1_000_000.0)
    provider = StaticSettingsProvider(snapshot)
    limiter = RateLimiter(provider, InMemoryCounterStore(clock=clock), clock=clock)
    challenge = ChallengeService(ChallengeSettings(secret_key="k"), rng=lambda: 3)
    tickets = InMemoryTicketPool()
    gate = SubmissionGatekeeper(
        challenge=challenge,
        limiter=limiter,
        restrictions=AccessRestrictionChecker(),
        settings_provider=provider,
        tickets=tickets,
    )
    return {"limiter": limiter, "challenge": challenge, "tickets": tickets, "gate": gate}


@pytest.fixture
def client(wiring) -> TestClient:
    app = create_app()
    app.dependency_overrides[dependencies.get_rate_limiter] = lambda: wiring["limiter"]
    app.dependency_overrides[dependencies.get_challenge_service] = lambda: wiring["challenge"]
    app.dependency_overrides[dependencies.get_ticket_pool] = lambda: wiring["tickets"]
    app.dependency_overrides[dependencies.get_gatekeeper] = lambda: wiring["gate"]
    return TestClient(app)


@pytest.fixture
def security_fields(wiring) -> dict:
    return {"captcha_answer": "6", "captcha_hash": wiring["challenge"].generate().hash}


def test_health_needs_no_key(client: TestClient) -> None:
    resp = client.get("/health")

    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


@pytest.mark.parametrize("headers", [{}, {"X-API-Key": "wrong"}])
def test_v1_routes_require_api_key(client: TestClient, headers: dict) -> None:
    resp = client.get("/v1/challenge", headers=headers)

    assert resp.status_code == 403


def test_challenge_hides_answer(client: TestClient) -> None:
    resp = client.get("/v1/challenge", headers=HEADERS)

    assert resp.status_code == 200
    body = resp.json()
    assert body["label"] == "Security: How much is 3 + 3?"
    assert set(body) == {"label", "hash"}


class TestSubmissionCheck:
    def test_allowed(self, client: TestClient, security_fields: dict) -> None:
        resp = client.post(
            "/v1/gate/submissions/check",
            json={"ip": "1.2.3.4", "security_fields": security_fields},
            headers=HEADERS,
        )

        assert resp.status_code == 200
        assert resp.json()["allowed"] is True

    def test_rate_limited_returns_429_with_retry_after(self, client, security_fields) -> None:
        payload = {"ip": "1.2.3.4", "security_fields": security_fields}
        for _ in range(2):
            client.post("/v1/gate/submissions/check", json=payload, headers=HEADERS)

        resp = client.post("/v1/gate/submissions/check", json=payload, headers=HEADERS)

        assert resp.status_code == 429
        assert resp.headers["Retry-After"] == "3600"
        body = resp.json()
        assert body["reason"] == "ip_hour_limit"
        assert body["stage"] == "rate_limit"
        assert body["wait_seconds"] == 3600

    def test_blacklisted_is_forbidden(self, client, security_fields) -> None:
        resp = client.post(
            "/v1/gate/submissions/check",
            json={"ip": "10.0.0.1", "security_fields": security_fields},
            headers=HEADERS,
        )

        assert resp.status_code == 403
        assert resp.json()["stage"] == "rate_limit"
        assert resp.json()["reason"] == "blacklisted"

    def test_challenge_failure_returns_403(self, client: TestClient) -> None:
        resp = client.post(
            "/v1/gate/submissions/check",
            json={"ip": "1.2.3.4", "security_fields": {"captcha_answer": "1", "captcha_hash": "x"}},
            headers=HEADERS,
        )

        assert resp.status_code == 403
        assert resp.json()["message"] == "Error: The math answer is incorrect."

    def test_restriction_and_ticket_consumption(self, client, wiring, security_fields) -> None:
        client.post("/v1/tickets/5", json={"codes": ["TK-1"]}, headers=HEADERS)
        payload = {
            "ip": "1.2.3.4",
            "form_id": 5,
            "ticket_code": "tk1",
            "form_config": {"restrictions": {"ticket": "1"}, "generated_codes_list": "TK-1"},
            "security_fields": security_fields,
        }

        resp = client.post("/v1/gate/submissions/check", json=payload, headers=HEADERS)
        assert resp.status_code == 200
        assert resp.json()["is_ticket"] is True
        ticket = resp.json()["ticket_code"]

        first = client.post("/v1/tickets/5/consume", json={"code": ticket}, headers=HEADERS)
        second = client.post("/v1/tickets/5/consume", json={"code": ticket}, headers=HEADERS)
        assert first.json() == {"consumed": True}
        assert second.json() == {"consumed": False}
        assert client.get("/v1/tickets/5", headers=HEADERS).json()["remaining"] == 0

        again = client.post("/v1/gate/submissions/check", json=payload, headers=HEADERS)
        assert again.status_code == 403
        assert again.json()["reason"] == "ticket"
        assert again.json()["is_ticket"] is False

    def test_invalid_payload_is_422(self, client: TestClient) -> None:
        resp = client.post("/v1/gate/submissions/check", json={"user_id": "abc"}, headers=HEADERS)

        assert resp.status_code == 422


def test_verification_check(client: TestClient, snapshot) -> None:
    resp = client.post("/v1/gate/verification/check", json={"ip": "1.2.3.4"}, headers=HEADERS)

    # verification is not configured in this snapshot
    assert resp.status_code == 200
    assert resp.json()["allowed"] is True


def test_user_action_check(client: TestClient) -> None:
    url = "/v1/gate/users/9/actions/export/check"
    body = {"max_per_hour": 1, "max_per_day": 5}

    assert client.post(url, json=body, headers=HEADERS).status_code == 200
    resp = client.post(url, json=body, headers=HEADERS)

    assert resp.status_code == 429
    assert resp.json()["reason"] == "user_hour_limit"


def test_anonymous_user_action_is_never_limited(client: TestClient) -> None:
    for _ in range(10):
        assert client.post("/v1/gate/users/0/actions/export/check", headers=HEADERS).status_code == 200


def test_store_outage_on_consume_returns_503(client: TestClient, wiring) -> None:
    broken = Mock()
    broken.consume_if_valid.side_effect = StoreUnavailableError(
        code="ticket_pool_unavailable", message="Ticket pool is unavailable"
    )
    client.app.dependency_overrides[dependencies.get_ticket_pool] = lambda: broken

    resp = client.post("/v1/tickets/1/consume", json={"code": "X"}, headers=HEADERS)

    assert resp.status_code == 503
    assert resp.json()["error"]["code"] == "ticket_pool_unavailable"


def test_responses_carry_request_id(client: TestClient) -> None:
    resp = client.get("/v1/challenge", headers={**HEADERS, "X-Request-ID": "req-1"})

    assert resp.headers["X-Request-ID"] == "req-1"


def test_default_wiring_uses_shared_backends() -> None:
    dependencies.reset_dependencies()

    assert dependencies.get_counter_store() is dependencies.get_counter_store()
    assert dependencies.get_ticket_pool() is dependencies.get_ticket_pool()
    assert isinstance(dependencies.get_gatekeeper(), SubmissionGatekeeper)

    dependencies.reset_dependencies()


def test_recorded_submissions_enforce_email_limit_with_default_wiring() -> None:
    dependencies.reset_dependencies()
    client = TestClient(create_app())

    def check(ip: str) -> int:
        payload = {"ip": ip, "email": "a@b.com", "require_challenge": False}
        return client.post("/v1/gate/submissions/check", json=payload, headers=HEADERS).status_code

    assert check("198.51.100.1") == 200
    for _ in range(3):
        resp = client.post("/v1/gate/submissions/record", json={"email": "a@b.com"}, headers=HEADERS)
        assert resp.json() == {"recorded": True, "ticket_consumed": None}

    assert check("198.51.100.2") == 429

    dependencies.reset_dependencies()
