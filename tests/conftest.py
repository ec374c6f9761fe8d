from datetime import datetime, timedelta, timezone

import pytest

from app.services.queue_service import QueueService
from app.services.service_duration import InMemoryServiceDurationSource

CLINIC_ID = "clinic-c"
BASE_TIME = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class ManualClock:
    def __init__(self, start: datetime = BASE_TIME):
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current += timedelta(**kwargs)
        return self.current


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def duration_source():
    return InMemoryServiceDurationSource({CLINIC_ID: 10.0}, fallback=15.0)


@pytest.fixture
def service(duration_source, clock):
    return QueueService(duration_source, clock=clock, refresh_interval=0, auto_notify=False)


def ts(minutes: float = 0) -> datetime:
    return BASE_TIME + timedelta(minutes=minutes)
