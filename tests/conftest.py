"""Shared test fixtures."""

import os

# Settings() requires JWT_SECRET at import time
os.environ.setdefault("JWT_SECRET", "test-secret-do-not-use-in-prod")

from datetime import datetime, timedelta, timezone  # noqa: E402

import pytest  # noqa: E402

START = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that only moves when a test advances it."""

    def __init__(self, start: datetime = START) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
