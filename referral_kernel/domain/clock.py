"""
Injectable time source.

Services stamp ``created_at``, ``decided_at``, ``processed_at`` and comment
times from the ``Clock`` they were constructed with, never from
``datetime.now()``, so tests can pin and step time.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

DEFAULT_TEST_EPOCH = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class Clock(ABC):
    """Returns timezone-aware UTC datetimes."""

    @abstractmethod
    def now(self) -> datetime:
        ...


class SystemClock(Clock):

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """Frozen at ``start`` until moved with ``advance()``."""

    def __init__(self, start: datetime | None = None):
        self._current = start or DEFAULT_TEST_EPOCH

    def now(self) -> datetime:
        return self._current

    def advance(self, seconds: float = 1) -> datetime:
        self._current += timedelta(seconds=seconds)
        return self._current
