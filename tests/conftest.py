"""Shared test helpers for the usage monitor tests."""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import pytest


@dataclass
class FixedClock:
    """Clock that always returns the same instant until moved."""
    current: datetime

    def now(self) -> datetime:
        return self.current

    def advance(self, delta: timedelta) -> None:
        self.current = self.current + delta


@pytest.fixture()
def fixed_clock() -> FixedClock:
    # 11:00 on 2026-02-15 in UTC+8
    return FixedClock(datetime(2026, 2, 15, 3, 0, tzinfo=timezone.utc))
