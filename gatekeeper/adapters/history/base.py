"""Interface to persisted submission counts.

Email and identifier limits span days to a year, longer than counter TTLs
should live, so they are answered from the submission records themselves.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class HistoricalCountStore(ABC):
    """Counts persisted submissions per subject."""

    @abstractmethod
    def record(
        self,
        *,
        email: str | None = None,
        identifier: str | None = None,
        at: float | None = None,
    ) -> None:
        """Record one saved submission (``at`` defaults to now)."""
        raise NotImplementedError

    @abstractmethod
    def count_by_email_since(self, email: str, since: float) -> int:
        """Submissions for a normalized email at or after ``since`` (UNIX seconds)."""
        raise NotImplementedError

    @abstractmethod
    def count_by_identifier_since(self, identifier: str, since: float) -> int:
        """Submissions for a normalized identifier at or after ``since``."""
        raise NotImplementedError
