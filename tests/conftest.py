"""Shared test fixtures."""

from datetime import UTC, datetime, timedelta

import pytest


class FakeClock:
    """Settable stand-in for ``utc_now``."""

    def __init__(self) -> None:
        self.now = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()
