"""Windowed abuse counters and blacklist/whitelist resolution.

The RateLimiter composes a CounterStore, the list matcher and a
SettingsProvider into allow/deny decisions. Rules inside a check run in a
fixed order and the first violated rule wins.

Counting policy: by default every call to a ``check_*`` method counts as an
attempt, whether or not it was allowed, because the abuse target is request
volume. Pass ``count_denied_attempts=False`` to count only allowed attempts.
The IP cooldown marker is refreshed only by attempts that get past the
cooldown rule, so a client hammering during its cooldown does not extend it.

Failure policy: counter reads that cannot reach the store behave as "not
found", failed counter writes do not deny the request, and every decision
touched by a failed write carries ``degraded=True`` for the audit trail.
"""

from __future__ import annotations

import dataclasses
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from gatekeeper.adapters.counter_store.base import (
    AbstractCounterStore,
    CounterKey,
    CounterScope,
    Window,
    marker_key,
)
from gatekeeper.adapters.history.base import HistoricalCountStore
from gatekeeper.adapters.settings.base import SettingsProvider
from gatekeeper.core.errors import AppError, StoreUnavailableError
from gatekeeper.core.logging import hash_subject
from gatekeeper.schemas.rate_limit import IdentifierLimitSettings, RateLimitSettings
from gatekeeper.services.list_matcher import find_match
from gatekeeper.utils.normalizers import (
    format_wait,
    normalize_email,
    normalize_identifier,
    normalize_ip,
)

logger = logging.getLogger(__name__)

BLOCKED_MESSAGE = "Access blocked."
USER_LIMIT_MESSAGE = "Too many attempts. Please try again in {time}."
DEFAULT_USER_MAX_PER_HOUR = 5
DEFAULT_USER_MAX_PER_DAY = 20


class LimitReason(str, Enum):
    BLACKLISTED = "blacklisted"
    IP_COOLDOWN = "ip_cooldown"
    IP_HOUR_LIMIT = "ip_hour_limit"
    IP_DAY_LIMIT = "ip_day_limit"
    VERIFICATION_HOUR_LIMIT = "verification_hour_limit"
    VERIFICATION_DAY_LIMIT = "verification_day_limit"
    EMAIL_DAY_LIMIT = "email_day_limit"
    EMAIL_WEEK_LIMIT = "email_week_limit"
    EMAIL_MONTH_LIMIT = "email_month_limit"
    IDENTIFIER_MONTH_LIMIT = "identifier_month_limit"
    IDENTIFIER_YEAR_LIMIT = "identifier_year_limit"
    IDENTIFIER_BLOCKED = "identifier_blocked"
    GLOBAL_MINUTE_LIMIT = "global_minute_limit"
    GLOBAL_HOUR_LIMIT = "global_hour_limit"
    USER_HOUR_LIMIT = "user_hour_limit"
    USER_DAY_LIMIT = "user_day_limit"


@dataclass(frozen=True)
class LimitDecision:
    """Outcome of a rate-limit check.

    Attributes:
        allowed: Whether the request may proceed.
        reason: ``LimitReason`` value when denied, "" when allowed.
        wait_seconds: Seconds until a retry can succeed (0 when allowed).
        message: Short user-facing text ("" when allowed).
        scope: Scope that decided (ip, email, blacklist, whitelist...).
        subject_category: Kind of subject that decided (ip, email,
            email_domain, identifier, user, global).
        count: Observed count that triggered a denial, when meaningful.
        remaining: Attempts left in the tightest window, when known.
        degraded: A counter write failed while producing this decision.
    """

    allowed: bool
    reason: str = ""
    wait_seconds: int = 0
    message: str = ""
    scope: str = ""
    subject_category: str = ""
    count: int | None = None
    remaining: int | None = None
    degraded: bool = False


def _render(template: str, *, wait_seconds: int = 0, count: int | None = None) -> str:
    text = template.replace("{time}", format_wait(wait_seconds))
    if count is not None:
        text = text.replace("{count}", str(count))
    return text


class RateLimiter:
    """Allow/deny decisions for IP, verification, email, identifier, global
    and per-user-action limits."""

    def __init__(
        self,
        settings_provider: SettingsProvider,
        store: AbstractCounterStore,
        *,
        history: HistoricalCountStore | None = None,
        clock: Callable[[], float] = time.time,
        key_prefix: str = "gk",
        count_denied_attempts: bool = True,
    ) -> None:
        self._settings_provider = settings_provider
        self._store = store
        self._history = history
        self._clock = clock
        self._prefix = key_prefix
        self._count_denied = count_denied_attempts

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _now(self) -> int:
        return int(self._clock())

    def _snapshot(self) -> RateLimitSettings:
        try:
            return self._settings_provider.get_rate_limit_settings()
        except AppError as exc:
            # Unreadable settings disable every scope rather than lock users out
            logger.error(
                "rate_limit.settings_unavailable",
                extra={"error_code": exc.code, "effect": "all_scopes_disabled"},
            )
            return RateLimitSettings()

    def _key(self, scope: CounterScope, subject: str, window: Window) -> str:
        return CounterKey(scope, subject, window).render(self._prefix)

    def _marker(self, scope: CounterScope, subject: str, kind: str) -> str:
        return marker_key(scope, subject, kind, self._prefix)

    def _count(self, key: str) -> int:
        value, found = self._store.get(key)
        return value if found else 0

    def _record(self, keys: list[tuple[str, Window]], *, denied: bool) -> bool:
        """Increment counters for this attempt; returns False if a write failed."""
        if denied and not self._count_denied:
            return True
        ok = True
        for key, window in keys:
            try:
                self._store.increment(key, window.seconds)
            except StoreUnavailableError:
                ok = False
        return ok

    def _set_marker(self, key: str, value: int, ttl_seconds: int) -> bool:
        try:
            self._store.set_with_ttl(key, value, ttl_seconds)
        except StoreUnavailableError:
            return False
        return True

    @staticmethod
    def _allow(scope: str = "", **kwargs) -> LimitDecision:
        return LimitDecision(allowed=True, scope=scope, **kwargs)

    def _deny(
        self,
        reason: LimitReason,
        *,
        wait_seconds: int,
        template: str,
        scope: str,
        subject_category: str,
        subject: str,
        count: int | None = None,
    ) -> LimitDecision:
        wait_seconds = max(0, int(wait_seconds))
        logger.warning(
            "rate_limit.denied",
            extra={
                "scope": scope,
                "reason": reason.value,
                "wait_seconds": wait_seconds,
                "subject_category": subject_category,
                "subject_hash": hash_subject(subject),
            },
        )
        return LimitDecision(
            allowed=False,
            reason=reason.value,
            wait_seconds=wait_seconds,
            message=_render(template, wait_seconds=wait_seconds, count=count),
            scope=scope,
            subject_category=subject_category,
            count=count,
        )

    def _windowed(
        self,
        scope: CounterScope,
        subject: str,
        rules: list[tuple[Window, int, LimitReason]],
        *,
        template: str,
        subject_category: str,
    ) -> LimitDecision:
        """Evaluate ``count >= limit`` rules in order, then count the attempt."""
        keys = [(self._key(scope, subject, window), window) for window, _, _ in rules]
        decision: LimitDecision | None = None
        remaining: int | None = None

        for (key, window), (_, limit, reason) in zip(keys, rules):
            current = self._count(key)
            if current >= limit:
                decision = self._deny(
                    reason,
                    wait_seconds=window.seconds,
                    template=template,
                    scope=scope.value,
                    subject_category=subject_category,
                    subject=subject,
                    count=current,
                )
                break
            left = limit - current - 1
            remaining = left if remaining is None else min(remaining, left)

        written = self._record(keys, denied=decision is not None)
        if decision is None:
            decision = self._allow(scope.value, remaining=remaining)
        if not written:
            decision = dataclasses.replace(decision, degraded=True)
        return decision

    def _history_count(self, lookup: Callable[[str, float], int], subject: str, since: float) -> int | None:
        try:
            return int(lookup(subject, since))
        except Exception:
            logger.warning("rate_limit.history_unavailable", exc_info=True)
            return None

    # ------------------------------------------------------------------
    # Individual checks
    # ------------------------------------------------------------------

    def check_ip_limit(self, ip: str | None) -> LimitDecision:
        """Cooldown, then hourly, then daily limit for one IP."""
        return self._check_ip(self._snapshot(), ip)

    def _check_ip(self, snapshot: RateLimitSettings, ip: str | None) -> LimitDecision:
        cfg = snapshot.ip
        subject = normalize_ip(ip)
        if cfg is None or not cfg.enabled or not subject:
            return self._allow("ip")

        now = self._now()
        cooldown_key = self._marker(CounterScope.IP, subject, "cooldown")

        if cfg.cooldown_seconds > 0:
            last_attempt, found = self._store.get(cooldown_key)
            elapsed = now - last_attempt
            if found and elapsed < cfg.cooldown_seconds:
                decision = self._deny(
                    LimitReason.IP_COOLDOWN,
                    wait_seconds=cfg.cooldown_seconds - elapsed,
                    template=cfg.message,
                    scope="ip",
                    subject_category="ip",
                    subject=subject,
                )
                written = self._record(
                    [
                        (self._key(CounterScope.IP, subject, Window.HOUR), Window.HOUR),
                        (self._key(CounterScope.IP, subject, Window.DAY), Window.DAY),
                    ],
                    denied=True,
                )
                return decision if written else dataclasses.replace(decision, degraded=True)

        decision = self._windowed(
            CounterScope.IP,
            subject,
            [
                (Window.HOUR, cfg.max_per_hour, LimitReason.IP_HOUR_LIMIT),
                (Window.DAY, cfg.max_per_day, LimitReason.IP_DAY_LIMIT),
            ],
            template=cfg.message,
            subject_category="ip",
        )

        if cfg.cooldown_seconds > 0 and not self._set_marker(cooldown_key, now, cfg.cooldown_seconds):
            decision = dataclasses.replace(decision, degraded=True)
        return decision

    def check_verification_limit(self, ip: str | None) -> LimitDecision:
        """Hourly then daily limit on the public verification endpoint.

        Uses its own counters so verification traffic never consumes the
        submission budget of the same IP. Turning the ``ip`` scope off turns
        this limit off too.
        """
        snapshot = self._snapshot()
        cfg = snapshot.verification
        subject = normalize_ip(ip)
        if snapshot.ip is None or not snapshot.ip.enabled:
            return self._allow("verification")
        if cfg is None or not cfg.enabled or not subject:
            return self._allow("verification")

        return self._windowed(
            CounterScope.VERIFICATION,
            subject,
            [
                (Window.HOUR, cfg.max_per_hour, LimitReason.VERIFICATION_HOUR_LIMIT),
                (Window.DAY, cfg.max_per_day, LimitReason.VERIFICATION_DAY_LIMIT),
            ],
            template=cfg.message,
            subject_category="ip",
        )

    def check_email_limit(self, email: str | None) -> LimitDecision:
        """Daily, weekly, monthly submission counts for one email.

        Only active with ``check_database``; counts come from the submission
        history, not from the counter store.
        """
        return self._check_email(self._snapshot(), email)

    def _check_email(self, snapshot: RateLimitSettings, email: str | None) -> LimitDecision:
        cfg = snapshot.email
        subject = normalize_email(email)
        if cfg is None or not cfg.enabled or not cfg.check_database or not subject:
            return self._allow("email")
        if self._history is None:
            logger.warning("rate_limit.history_missing", extra={"scope": "email"})
            return self._allow("email")

        now = self._now()
        rules = [
            (Window.DAY, cfg.max_per_day, LimitReason.EMAIL_DAY_LIMIT),
            (Window.WEEK, cfg.max_per_week, LimitReason.EMAIL_WEEK_LIMIT),
            (Window.MONTH, cfg.max_per_month, LimitReason.EMAIL_MONTH_LIMIT),
        ]
        for window, limit, reason in rules:
            count = self._history_count(self._history.count_by_email_since, subject, now - window.seconds)
            if count is None:
                return self._allow("email", degraded=True)
            if count >= limit:
                return self._deny(
                    reason,
                    wait_seconds=cfg.wait_hours * 3600,
                    template=cfg.message,
                    scope="email",
                    subject_category="email",
                    subject=subject,
                    count=count,
                )
        return self._allow("email")

    def check_identifier_limit(self, identifier: str | None) -> LimitDecision:
        """Monthly and yearly counts for one identifier, with block escalation.

        Once ``block_threshold`` denials pile up within ``block_hours``, the
        identifier is blocked for ``block_duration`` hours whatever its counts.
        """
        return self._check_identifier(self._snapshot(), identifier)

    def _check_identifier(self, snapshot: RateLimitSettings, identifier: str | None) -> LimitDecision:
        cfg = snapshot.identifier
        subject = normalize_identifier(identifier)
        if cfg is None or not cfg.enabled or not subject:
            return self._allow("identifier")

        now = self._now()
        block_key = self._marker(CounterScope.IDENTIFIER, subject, "block")
        blocked_until, found = self._store.get(block_key)
        if found and blocked_until > now:
            return self._deny(
                LimitReason.IDENTIFIER_BLOCKED,
                wait_seconds=blocked_until - now,
                template=cfg.message,
                scope="identifier",
                subject_category="identifier",
                subject=subject,
            )

        if not cfg.check_database:
            return self._allow("identifier")
        if self._history is None:
            logger.warning("rate_limit.history_missing", extra={"scope": "identifier"})
            return self._allow("identifier")

        rules = [
            (Window.MONTH, cfg.max_per_month, LimitReason.IDENTIFIER_MONTH_LIMIT),
            (Window.YEAR, cfg.max_per_year, LimitReason.IDENTIFIER_YEAR_LIMIT),
        ]
        for window, limit, reason in rules:
            count = self._history_count(
                self._history.count_by_identifier_since, subject, now - window.seconds
            )
            if count is None:
                return self._allow("identifier", degraded=True)
            if count >= limit:
                return self._escalate(cfg, subject, now, block_key, reason, window, count)
        return self._allow("identifier")

    def _escalate(
        self,
        cfg: IdentifierLimitSettings,
        subject: str,
        now: int,
        block_key: str,
        reason: LimitReason,
        window: Window,
        count: int,
    ) -> LimitDecision:
        """Deny on a count limit and block the identifier once denials pile up."""
        denials_key = self._marker(CounterScope.IDENTIFIER, subject, "denials")
        try:
            denials = self._store.increment(denials_key, cfg.block_hours * 3600)
        except StoreUnavailableError:
            denial = self._deny(
                reason,
                wait_seconds=window.seconds,
                template=cfg.message,
                scope="identifier",
                subject_category="identifier",
                subject=subject,
                count=count,
            )
            return dataclasses.replace(denial, degraded=True)

        if denials < cfg.block_threshold:
            return self._deny(
                reason,
                wait_seconds=window.seconds,
                template=cfg.message,
                scope="identifier",
                subject_category="identifier",
                subject=subject,
                count=count,
            )

        duration = cfg.block_duration * 3600
        written = self._set_marker(block_key, now + duration, duration)
        if written:
            try:
                self._store.delete(denials_key)
            except StoreUnavailableError:
                written = False
        logger.warning(
            "rate_limit.identifier_blocked",
            extra={"subject_hash": hash_subject(subject), "block_seconds": duration, "denials": denials},
        )
        decision = self._deny(
            LimitReason.IDENTIFIER_BLOCKED,
            wait_seconds=duration,
            template=cfg.message,
            scope="identifier",
            subject_category="identifier",
            subject=subject,
            count=count,
        )
        return decision if written else dataclasses.replace(decision, degraded=True)

    def check_global_limit(self) -> LimitDecision:
        """System-wide per-minute and per-hour budget."""
        return self._check_global(self._snapshot())

    def _check_global(self, snapshot: RateLimitSettings) -> LimitDecision:
        cfg = snapshot.global_
        if cfg is None or not cfg.enabled:
            return self._allow("global")
        return self._windowed(
            CounterScope.GLOBAL,
            "*",
            [
                (Window.MINUTE, cfg.max_per_minute, LimitReason.GLOBAL_MINUTE_LIMIT),
                (Window.HOUR, cfg.max_per_hour, LimitReason.GLOBAL_HOUR_LIMIT),
            ],
            template=cfg.message,
            subject_category="global",
        )

    def check_user_limit(
        self,
        user_id: int | None,
        action: str,
        max_per_hour: int = DEFAULT_USER_MAX_PER_HOUR,
        max_per_day: int = DEFAULT_USER_MAX_PER_DAY,
    ) -> LimitDecision:
        """Per-authenticated-user limit for a named action.

        ``user_id`` 0 or None (anonymous/system) is never limited. Does not
        depend on the settings snapshot.
        """
        if not user_id:
            return self._allow("user_action")

        subject = f"{int(user_id)}:{action.strip().lower()}"
        return self._windowed(
            CounterScope.USER_ACTION,
            subject,
            [
                (Window.HOUR, max_per_hour, LimitReason.USER_HOUR_LIMIT),
                (Window.DAY, max_per_day, LimitReason.USER_DAY_LIMIT),
            ],
            template=USER_LIMIT_MESSAGE,
            subject_category="user",
        )

    # ------------------------------------------------------------------
    # Composite entry point
    # ------------------------------------------------------------------

    def check_all(
        self,
        ip: str | None,
        email: str | None = None,
        identifier: str | None = None,
        user_id: int | None = None,
    ) -> LimitDecision:
        """Blacklist, whitelist, then IP, email, identifier and global limits.

        A blacklist hit denies and a whitelist hit allows without touching
        any counter. Otherwise the first denying check short-circuits.
        Never raises.
        """
        try:
            return self._check_all(ip, email, identifier, user_id)
        except Exception:
            logger.exception("rate_limit.check_failed", extra={"effect": "fail_open"})
            return self._allow(degraded=True)

    def _check_all(
        self,
        ip: str | None,
        email: str | None,
        identifier: str | None,
        user_id: int | None,
    ) -> LimitDecision:
        snapshot = self._snapshot()

        hit = find_match(snapshot.blacklist, ip=ip, email=email, identifier=identifier)
        if hit is not None:
            logger.warning(
                "rate_limit.blacklisted",
                extra={"subject_category": hit.value, "user_id_hash": hash_subject(user_id)},
            )
            return LimitDecision(
                allowed=False,
                reason=LimitReason.BLACKLISTED.value,
                message=BLOCKED_MESSAGE,
                scope="blacklist",
                subject_category=hit.value,
            )

        hit = find_match(snapshot.whitelist, ip=ip, email=email, identifier=identifier)
        if hit is not None:
            logger.info("rate_limit.whitelisted", extra={"subject_category": hit.value})
            return self._allow("whitelist", subject_category=hit.value)

        degraded = False
        checks: list[Callable[[], LimitDecision]] = []
        if ip:
            checks.append(lambda: self._check_ip(snapshot, ip))
        if email:
            checks.append(lambda: self._check_email(snapshot, email))
        if identifier:
            checks.append(lambda: self._check_identifier(snapshot, identifier))
        checks.append(lambda: self._check_global(snapshot))

        for check in checks:
            decision = check()
            degraded = degraded or decision.degraded
            if not decision.allowed:
                return dataclasses.replace(decision, degraded=degraded)

        return self._allow(degraded=degraded)

    # ------------------------------------------------------------------
    # Operator actions
    # ------------------------------------------------------------------

    def clear_subject(self, scope: CounterScope, subject: str) -> None:
        """Forget every counter and marker held for one subject."""
        if scope is CounterScope.IP or scope is CounterScope.VERIFICATION:
            normalized = normalize_ip(subject)
        elif scope is CounterScope.EMAIL:
            normalized = normalize_email(subject)
        elif scope is CounterScope.IDENTIFIER:
            normalized = normalize_identifier(subject)
        else:
            normalized = subject

        keys = [self._key(scope, normalized, window) for window in Window]
        keys += [self._marker(scope, normalized, kind) for kind in ("cooldown", "block", "denials")]
        for key in keys:
            self._store.delete(key)
        logger.info(
            "rate_limit.cleared",
            extra={"scope": scope.value, "subject_hash": hash_subject(normalized)},
        )
