"""Audit sinks for gate decisions."""

from gatekeeper.adapters.audit.base import AuditEvent, AuditSink
from gatekeeper.adapters.audit.logging_sink import LoggingAuditSink, MemoryAuditSink

__all__ = ["AuditEvent", "AuditSink", "LoggingAuditSink", "MemoryAuditSink"]
