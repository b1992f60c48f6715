from datetime import datetime, timedelta, timezone

import pytest

from chorekeeper.ops import StructuredLogger
from chorekeeper.service import ChoreKeeper


class FakeClock:
    def __init__(self, moment: datetime) -> None:
        self.moment = moment

    def __call__(self) -> datetime:
        return self.moment

    def advance(self, **kwargs: float) -> None:
        self.moment += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    # Monday 2024-01-08
    return FakeClock(datetime(2024, 1, 8, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def keeper(clock: FakeClock) -> ChoreKeeper:
    return ChoreKeeper(clock=clock, logger=StructuredLogger())
