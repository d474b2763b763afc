import os
from datetime import datetime, timedelta, timezone

# Tests never talk to a real controller
os.environ["SERIAL_ENABLED"] = "false"
os.environ["SEAT_COUNT"] = "4"

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402

from seatsync.services.event_bus import SeatEventBus  # noqa: E402
from seatsync.services.event_router import EventRouter  # noqa: E402
from seatsync.services.expiry_scheduler import ExpiryScheduler  # noqa: E402
from seatsync.services.seat_store import SeatStore  # noqa: E402

T0 = datetime(2026, 10, 18, 9, 0, tzinfo=timezone.utc)
TIMEOUT = timedelta(hours=1)


class FakeClock:
    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class RecordingActuator:
    def __init__(self) -> None:
        self.commands: list[tuple[int, bool]] = []

    def send(self, seat_id: int, occupied: bool) -> None:
        self.commands.append((seat_id, occupied))


def drain(subscription) -> list:
    events = []
    while not subscription.queue.empty():
        events.append(subscription.queue.get_nowait())
    return events


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def actuator():
    return RecordingActuator()


@pytest.fixture
def store(clock):
    return SeatStore(4, TIMEOUT, clock=clock)


@pytest.fixture
def bus():
    return SeatEventBus(queue_size=100)


@pytest.fixture
def subscription(bus):
    return bus.subscribe()


@pytest.fixture
def scheduler(clock):
    return ExpiryScheduler(clock=clock)


@pytest_asyncio.fixture
async def event_router(store, scheduler, bus, actuator, clock):
    router = EventRouter(store, scheduler, bus, actuator, clock=clock)
    yield router
    await scheduler.shutdown()
