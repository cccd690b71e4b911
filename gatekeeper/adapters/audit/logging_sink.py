"""Audit sinks built on the logging stack."""

from __future__ import annotations

import logging
import threading
from dataclasses import asdict

from gatekeeper.adapters.audit.base import AuditEvent, AuditSink

logger = logging.getLogger("gatekeeper.audit")


class LoggingAuditSink(AuditSink):
    """Writes each event as a structured ``gate.audit`` log record."""

    def record(self, event: AuditEvent) -> None:
        level = logging.WARNING if event.event == "degraded" else logging.INFO
        logger.log(level, "gate.audit", extra=asdict(event))


class MemoryAuditSink(AuditSink):
    """Keeps events in a list; handy for tests and admin previews."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.events: list[AuditEvent] = []

    def record(self, event: AuditEvent) -> None:
        with self._lock:
            self.events.append(event)
