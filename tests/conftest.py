"""Shared fixtures — a controllable clock for TTL tests."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2025, 1, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)

    def epoch(self, **kwargs) -> int:
        """Epoch seconds *kwargs* from now, as a login callback would send."""
        return int((self.now + timedelta(**kwargs)).timestamp())


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
