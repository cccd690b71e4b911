"""Tests for the SubmissionGatekeeper orchestration and audit trail."""

from unittest.mock import Mock

import pytest

from gatekeeper.adapters.audit import LoggingAuditSink, MemoryAuditSink
from gatekeeper.adapters.settings import StaticSettingsProvider
from gatekeeper.adapters.tickets import InMemoryTicketPool
from gatekeeper.core.config import ChallengeSettings
from gatekeeper.core.errors import StoreUnavailableError
from gatekeeper.core.logging import hash_subject
from gatekeeper.schemas.rate_limit import (
    AuditLoggingSettings,
    EmailLimitSettings,
    IPLimitSettings,
    RateLimitSettings,
    SubjectListSettings,
)
from gatekeeper.schemas.restrictions import FormRestrictionConfig, RestrictionFlags
from gatekeeper.services.access_restriction import AccessRestrictionChecker
from gatekeeper.services.challenge_service import ChallengeService
from gatekeeper.services.gatekeeper import SubmissionAttempt, SubmissionGatekeeper
from gatekeeper.services.rate_limiter import RateLimiter

AUDIT_ALL = AuditLoggingSettings(enabled=True, log_allowed=True, log_blocked=True)


@pytest.fixture
def challenge() -> ChallengeService:
    return ChallengeService(ChallengeSettings(secret_key="k"), rng=lambda: 2)


@pytest.fixture
def solved(challenge) -> dict:
    return {"captcha_answer": "4", "captcha_hash": challenge.generate().hash}


@pytest.fixture
def build(store, clock, challenge):
    def _build(snapshot: RateLimitSettings, **kwargs) -> SubmissionGatekeeper:
        provider = StaticSettingsProvider(snapshot)
        return SubmissionGatekeeper(
            challenge=challenge,
            limiter=RateLimiter(provider, store, clock=clock),
            restrictions=AccessRestrictionChecker(),
            settings_provider=provider,
            **kwargs,
        )

    return _build


def test_challenge_runs_before_rate_limits(build, store) -> None:
    gate = build(RateLimitSettings(ip=IPLimitSettings()))

    decision = gate.evaluate(SubmissionAttempt(ip="1.2.3.4", security_fields={"honeypot_trap": "x"}))

    assert decision.allowed is False
    assert decision.stage == "challenge"
    assert decision.reason == "honeypot"
    assert len(store) == 0


def test_rate_limit_denial(build, solved) -> None:
    gate = build(RateLimitSettings(blacklist=SubjectListSettings(ips=["10.0.0.1"])))

    decision = gate.evaluate(SubmissionAttempt(ip="10.0.0.1", security_fields=solved))

    assert decision.stage == "rate_limit"
    assert decision.reason == "blacklisted"


def test_restriction_denial(build, solved) -> None:
    gate = build(RateLimitSettings())
    form = FormRestrictionConfig(restrictions=RestrictionFlags(password=True), validation_code="pw")

    decision = gate.evaluate(
        SubmissionAttempt(ip="1.2.3.4", form_config=form, password="bad", security_fields=solved)
    )

    assert decision.allowed is False
    assert decision.stage == "restriction"
    assert decision.reason == "password"
    assert decision.message == "Incorrect password."


def test_ticket_flow_consumes_once(build, solved) -> None:
    tickets = InMemoryTicketPool()
    tickets.seed(3, ["ABC-123"])
    gate = build(RateLimitSettings(), tickets=tickets)
    form = FormRestrictionConfig(restrictions=RestrictionFlags(ticket=True), generated_codes_list="ABC-123")
    attempt = SubmissionAttempt(
        ip="1.2.3.4", form_id=3, form_config=form, ticket_code="abc123", security_fields=solved
    )

    decision = gate.evaluate(attempt)

    assert decision.allowed is True
    assert decision.is_ticket is True
    assert gate.confirm_ticket(3, decision.ticket_code) is True
    assert gate.confirm_ticket(3, decision.ticket_code) is False


def test_confirm_ticket_without_pool(build) -> None:
    assert build(RateLimitSettings()).confirm_ticket(1, "X") is False


class TestTickets:
    @pytest.fixture
    def form(self) -> FormRestrictionConfig:
        return FormRestrictionConfig(
            restrictions=RestrictionFlags(ticket=True), generated_codes_list="TK-1\nTK-2"
        )

    def test_consumed_ticket_no_longer_validates(self, build, solved, form) -> None:
        tickets = InMemoryTicketPool()
        tickets.seed(3, ["TK-1", "TK-2"])
        gate = build(RateLimitSettings(), tickets=tickets)
        attempt = SubmissionAttempt(
            ip="1.2.3.4", form_id=3, form_config=form, ticket_code="tk-1", security_fields=solved
        )

        assert gate.evaluate(attempt).is_ticket is True
        assert gate.confirm_ticket(3, "TK1") is True

        decision = gate.evaluate(attempt)
        assert decision.allowed is False
        assert decision.stage == "restriction"
        assert decision.reason == "ticket"
        assert decision.message == "Invalid or already used ticket."
        assert decision.is_ticket is False

    def test_unseeded_ticket_is_denied_when_pool_wired(self, build, solved, form) -> None:
        gate = build(RateLimitSettings(), tickets=InMemoryTicketPool())

        decision = gate.evaluate(
            SubmissionAttempt(
                ip="1.2.3.4", form_id=3, form_config=form, ticket_code="TK-2", security_fields=solved
            )
        )

        assert decision.allowed is False
        assert decision.reason == "ticket"

    def test_form_list_alone_decides_without_pool(self, build, solved, form) -> None:
        gate = build(RateLimitSettings())

        decision = gate.evaluate(
            SubmissionAttempt(
                ip="1.2.3.4", form_id=3, form_config=form, ticket_code="TK-2", security_fields=solved
            )
        )

        assert decision.is_ticket is True


class TestRecordSubmission:
    def test_recorded_submissions_feed_email_limit(self, challenge, store, history, clock, solved) -> None:
        provider = StaticSettingsProvider(RateLimitSettings(email=EmailLimitSettings(max_per_day=2)))
        gate = SubmissionGatekeeper(
            challenge=challenge,
            limiter=RateLimiter(provider, store, history=history, clock=clock),
            restrictions=AccessRestrictionChecker(),
            settings_provider=provider,
            history=history,
        )
        attempt = SubmissionAttempt(ip="1.2.3.4", email="a@x.io", security_fields=solved)

        for _ in range(2):
            assert gate.evaluate(attempt).allowed is True
            assert gate.record_submission(email="A@x.io").recorded is True

        decision = gate.evaluate(attempt)
        assert decision.allowed is False
        assert decision.reason == "email_day_limit"

    def test_record_consumes_ticket_once(self, build, history) -> None:
        tickets = InMemoryTicketPool()
        tickets.seed(3, ["TK-1"])
        gate = build(RateLimitSettings(), tickets=tickets, history=history)

        first = gate.record_submission(identifier="123", form_id=3, ticket_code="TK1")
        second = gate.record_submission(identifier="123", form_id=3, ticket_code="TK1")

        assert first.ticket_consumed is True
        assert second.ticket_consumed is False
        assert history.count_by_identifier_since("123", 0) == 2

    def test_without_history_nothing_is_recorded(self, build) -> None:
        result = build(RateLimitSettings()).record_submission(email="a@x.io")

        assert result.recorded is False
        assert result.ticket_consumed is None


def test_challenge_can_be_skipped(build) -> None:
    decision = build(RateLimitSettings()).evaluate(SubmissionAttempt(ip="1.2.3.4", require_challenge=False))

    assert decision.allowed is True


class TestAudit:
    def test_no_events_when_logging_disabled(self, build, solved) -> None:
        sink = MemoryAuditSink()
        gate = build(RateLimitSettings(), audit_sink=sink)

        gate.evaluate(SubmissionAttempt(ip="1.2.3.4", security_fields=solved))

        assert sink.events == []

    def test_blocked_event_carries_hash_not_subject(self, build, solved) -> None:
        sink = MemoryAuditSink()
        snapshot = RateLimitSettings(
            blacklist=SubjectListSettings(ips=["10.0.0.1"]),
            logging=AuditLoggingSettings(enabled=True, log_blocked=True),
        )
        gate = build(snapshot, audit_sink=sink)

        gate.evaluate(SubmissionAttempt(ip="10.0.0.1", security_fields=solved))
        gate.evaluate(SubmissionAttempt(ip="10.0.0.2", security_fields=solved))

        assert len(sink.events) == 1
        event = sink.events[0]
        assert event.event == "blocked"
        assert event.reason == "blacklisted"
        assert event.subject_category == "ip"
        assert event.subject_hash == hash_subject("10.0.0.1")
        assert "10.0.0.1" not in repr(event)

    def test_allowed_events_when_enabled(self, build, solved) -> None:
        sink = MemoryAuditSink()
        gate = build(RateLimitSettings(logging=AUDIT_ALL), audit_sink=sink)

        gate.evaluate(SubmissionAttempt(ip="1.2.3.4", security_fields=solved))

        assert [e.event for e in sink.events] == ["allowed"]

    def test_degraded_events_always_emitted(self, challenge, clock, solved) -> None:
        failing = Mock()
        failing.get.return_value = (0, False)
        failing.increment.side_effect = StoreUnavailableError(code="counter_store_unavailable", message="down")
        failing.set_with_ttl.side_effect = failing.increment.side_effect
        provider = StaticSettingsProvider(RateLimitSettings(ip=IPLimitSettings()))
        sink = MemoryAuditSink()
        gate = SubmissionGatekeeper(
            challenge=challenge,
            limiter=RateLimiter(provider, failing, clock=clock),
            restrictions=AccessRestrictionChecker(),
            settings_provider=provider,
            audit_sink=sink,
        )

        decision = gate.evaluate(SubmissionAttempt(ip="1.2.3.4", security_fields=solved))

        assert decision.allowed is True
        assert decision.degraded is True
        assert [e.event for e in sink.events] == ["degraded"]

    def test_sink_failure_does_not_break_evaluation(self, build, solved) -> None:
        sink = Mock()
        sink.record.side_effect = RuntimeError("disk full")
        gate = build(RateLimitSettings(logging=AUDIT_ALL), audit_sink=sink)

        assert gate.evaluate(SubmissionAttempt(ip="1.2.3.4", security_fields=solved)).allowed is True

    def test_logging_sink_writes_audit_record(self, build, solved, caplog) -> None:
        gate = build(RateLimitSettings(logging=AUDIT_ALL), audit_sink=LoggingAuditSink())

        with caplog.at_level("INFO", logger="gatekeeper.audit"):
            gate.evaluate(SubmissionAttempt(ip="1.2.3.4", security_fields=solved))

        records = [r for r in caplog.records if r.getMessage() == "gate.audit"]
        assert len(records) == 1
        assert records[0].event == "allowed"
