"""Blacklist/whitelist membership tests."""

from __future__ import annotations

from enum import Enum
from typing import Iterable

from gatekeeper.schemas.rate_limit import SubjectListSettings
from gatekeeper.utils.normalizers import (
    email_domain,
    normalize_email,
    normalize_identifier,
    normalize_ip,
)


class MatchKind(str, Enum):
    IP = "ip"
    EMAIL = "email"
    EMAIL_DOMAIN = "email_domain"
    IDENTIFIER = "identifier"


def _pattern_domain(pattern: str) -> str:
    """Domain of a ``*@example.com`` pattern (a bare ``example.com`` is accepted too)."""
    pattern = pattern.strip().lower()
    if pattern.startswith("*@"):
        return pattern[2:]
    if pattern.startswith("@"):
        return pattern[1:]
    return pattern


def matches(kind: MatchKind, value: str | None, entries: Iterable[str]) -> bool:
    """Return True when ``value`` is a member of ``entries``.

    - ip / email: exact match after trimming (emails case-insensitively);
    - email_domain: the email's domain equals a pattern's domain, the local
      part is ignored;
    - identifier: both sides compared with non-alphanumerics stripped.

    An empty value never matches, and an empty list matches nothing.
    """
    if not value:
        return False

    if kind is MatchKind.IP:
        subject = normalize_ip(value)
        return bool(subject) and any(normalize_ip(e) == subject for e in entries)

    if kind is MatchKind.EMAIL:
        subject = normalize_email(value)
        return bool(subject) and any(normalize_email(e) == subject for e in entries)

    if kind is MatchKind.EMAIL_DOMAIN:
        domain = email_domain(value)
        return bool(domain) and any(_pattern_domain(e) == domain for e in entries)

    if kind is MatchKind.IDENTIFIER:
        subject = normalize_identifier(value)
        return bool(subject) and any(normalize_identifier(e) == subject for e in entries)

    return False


def find_match(
    lists: SubjectListSettings,
    *,
    ip: str | None = None,
    email: str | None = None,
    identifier: str | None = None,
) -> MatchKind | None:
    """Check every subject against one list; returns the first kind that hit."""
    if matches(MatchKind.IP, ip, lists.ips):
        return MatchKind.IP
    if matches(MatchKind.EMAIL, email, lists.emails):
        return MatchKind.EMAIL
    if matches(MatchKind.EMAIL_DOMAIN, email, lists.email_domains):
        return MatchKind.EMAIL_DOMAIN
    if matches(MatchKind.IDENTIFIER, identifier, lists.identifiers):
        return MatchKind.IDENTIFIER
    return None
