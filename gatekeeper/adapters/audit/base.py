"""Audit sink interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class AuditEvent:
    """One recorded gate outcome.

    Attributes:
        event: ``allowed``, ``blocked`` or ``degraded``.
        stage: Gate stage that produced the outcome (challenge, rate_limit,
            restriction, or "" when every stage passed).
        reason: Machine-readable reason ("" when allowed).
        scope: Scope that decided (ip, email, blacklist...), "" when none.
        subject_category: Kind of subject involved (ip, email, identifier).
        subject_hash: Short digest of the subject; never the raw value.
        details: Extra structured context.
    """

    event: str
    stage: str = ""
    reason: str = ""
    scope: str = ""
    subject_category: str = ""
    subject_hash: str | None = None
    details: dict[str, Any] = field(default_factory=dict)


class AuditSink(ABC):
    """Fire-and-forget recorder of gate outcomes."""

    @abstractmethod
    def record(self, event: AuditEvent) -> None:
        raise NotImplementedError
