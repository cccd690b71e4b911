"""Subject normalization shared by list matching, counters and restrictions.

Every component compares subjects through these helpers so that an
identifier typed as ``123.456.789-01`` in a form and ``12345678901`` in an
admin list resolve to the same value, and so counter keys never split one
subject across two spellings.
"""

from __future__ import annotations

import math
import re

_NON_ALNUM = re.compile(r"[^0-9a-zA-Z]")
_TICKET_SEPARATORS = re.compile(r"[\s\-]")


def normalize_identifier(value: str | None) -> str:
    """Strip every non-alphanumeric character and lowercase the rest.

    Examples:
        >>> normalize_identifier("123.456.789-01")
        '12345678901'
        >>> normalize_identifier("  RF 12/34 ")
        'rf1234'
    """
    if not value:
        return ""
    return _NON_ALNUM.sub("", value).lower()


def normalize_email(value: str | None) -> str:
    """Trim and lowercase an email address."""
    if not value:
        return ""
    return value.strip().lower()


def email_domain(value: str | None) -> str:
    """Return the lowercase domain part of an email, or "" when absent."""
    email = normalize_email(value)
    local, sep, domain = email.rpartition("@")
    if not sep or not local:
        return ""
    return domain


def normalize_ip(value: str | None) -> str:
    if not value:
        return ""
    return value.strip().lower()


def normalize_ticket(value: str | None, *, ignore_dashes: bool = True) -> str:
    """Normalize a ticket code for comparison.

    Codes are always trimmed and upper-cased. With ``ignore_dashes`` the
    dashes and inner whitespace are dropped too, so ``abc-def-123`` and
    ``ABCDEF123`` are the same ticket.
    """
    if not value:
        return ""
    code = value.strip().upper()
    if ignore_dashes:
        code = _TICKET_SEPARATORS.sub("", code)
    return code


def split_lines(raw: str | None) -> list[str]:
    """Split a newline-separated admin list, dropping blank lines."""
    if not raw:
        return []
    return [line.strip() for line in raw.replace("\r\n", "\n").split("\n") if line.strip()]


def format_wait(wait_seconds: int) -> str:
    """Render a wait duration the way users read it.

    Examples:
        >>> format_wait(7200)
        '2 hour(s)'
        >>> format_wait(300)
        '5 minutes'
        >>> format_wait(30)
        'a few moments'
    """
    minutes = math.ceil(max(0, wait_seconds) / 60)
    if minutes > 60:
        return f"{math.ceil(minutes / 60)} hour(s)"
    if minutes > 1:
        return f"{minutes} minutes"
    return "a few moments"
