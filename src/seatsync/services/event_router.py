from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from datetime import datetime
from typing import Protocol, Union

from pydantic import ValidationError

from seatsync.api.schemas import (
    HardwareSeatEvent,
    SeatExtendedMessage,
    SeatResponse,
    SeatTimeoutMessage,
)
from seatsync.exceptions import MalformedInputError, SeatNotFoundError
from seatsync.services.event_bus import (
    SEAT_EXTENDED,
    SEAT_TIMEOUT,
    SEAT_UPDATE,
    SeatEvent,
    SeatEventBus,
)
from seatsync.services.expiry_scheduler import ExpiryScheduler
from seatsync.services.seat_store import Seat, SeatStore, utcnow

logger = logging.getLogger(__name__)


class SeatActuator(Protocol):
    def send(self, seat_id: int, occupied: bool) -> None:
        """Best-effort, non-blocking command to the seat's LED."""
        ...


def _minutes(store: SeatStore) -> int:
    return round(store.timeout.total_seconds() / 60)


class EventRouter:
    """Single writer for the seat store.

    Every producer (hardware line, manual override, extend, expiry timer) goes
    through here. Each seat has its own asyncio.Lock; the store mutation and
    the matching arm/cancel run inside the same critical section, so a manual
    release and a timer fire for the same seat can never both emit a release.
    """

    def __init__(
        self,
        store: SeatStore,
        scheduler: ExpiryScheduler,
        bus: SeatEventBus,
        actuator: SeatActuator,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._scheduler = scheduler
        self._bus = bus
        self._actuator = actuator
        self._clock = clock
        self._locks: dict[int, asyncio.Lock] = {seat_id: asyncio.Lock() for seat_id in store.seat_ids}
        scheduler.set_callback(self.auto_release)

    def _lock(self, seat_id: int) -> asyncio.Lock:
        lock = self._locks.get(seat_id)
        if lock is None:
            raise SeatNotFoundError(seat_id)
        return lock

    # --- queries ---

    def snapshot(self) -> list[Seat]:
        return self._store.get_all()

    def get_seat(self, seat_id: int) -> Seat:
        return self._store.get(seat_id)

    # --- producers ---

    async def hardware_event(self, seat_id: int, occupied: bool) -> Seat:
        """Button press reported by the controller; the LED already matches."""
        async with self._lock(seat_id):
            seat = self._set_occupancy(seat_id, occupied)
        logger.info("Seat %d updated by hardware: %s", seat_id, _label(occupied))
        return seat

    async def override(self, seat_id: int) -> Seat:
        """Manual toggle; the resulting state is relayed to the LED."""
        async with self._lock(seat_id):
            occupied = not self._store.get(seat_id).occupied
            seat = self._set_occupancy(seat_id, occupied)
            self._actuator.send(seat_id, occupied)
        logger.info("Seat %d manually toggled: %s", seat_id, _label(occupied))
        return seat

    async def extend(self, seat_id: int) -> Seat:
        async with self._lock(seat_id):
            seat = self._store.refresh_expiry(seat_id, self._clock())
            self._scheduler.arm(seat_id, seat.expires_at)
            self._publish_update(seat)
            self._bus.publish(
                SeatEvent(
                    SEAT_EXTENDED,
                    SeatExtendedMessage(
                        seat_id=seat_id,
                        message=f"Seat {seat_id} extended for another {_minutes(self._store)} minutes",
                        expires_at=seat.expires_at,
                    ).model_dump(mode="json", by_alias=True),
                )
            )
        logger.info("Seat %d extended until %s", seat_id, seat.expires_at.isoformat())
        return seat

    async def auto_release(self, seat_id: int, fired_at: datetime) -> None:
        """Expiry timer callback."""
        async with self._lock(seat_id):
            current = self._store.get(seat_id)
            if not current.occupied:
                logger.debug("Expiry for seat %d ignored, seat already available", seat_id)
                return
            if current.expires_at > fired_at:
                if not self._scheduler.is_armed(seat_id):
                    self._scheduler.arm(seat_id, current.expires_at)
                logger.debug("Stale expiry for seat %d ignored", seat_id)
                return
            seat = self._store.apply(seat_id, False, self._clock())
            self._scheduler.cancel(seat_id)
            self._actuator.send(seat_id, False)
            self._bus.publish(
                SeatEvent(
                    SEAT_TIMEOUT,
                    SeatTimeoutMessage(
                        seat_id=seat_id,
                        message=(
                            f"Seat {seat_id} was automatically released after "
                            f"{_minutes(self._store)} minutes"
                        ),
                    ).model_dump(mode="json", by_alias=True),
                )
            )
            self._publish_update(seat)
        logger.info("Seat %d automatically released", seat_id)

    async def handle_hardware_payload(self, raw: Union[str, bytes]) -> None:
        """Apply one line from the controller; bad lines are logged and dropped."""
        try:
            event = parse_hardware_payload(raw)
        except MalformedInputError as e:
            logger.warning("Dropping hardware payload: %s", e)
            return
        try:
            await self.hardware_event(event.seat_id, event.occupied)
        except SeatNotFoundError:
            logger.warning("Dropping hardware event for unknown seat %s", event.seat_id)

    # --- internals, caller holds the seat lock ---

    def _set_occupancy(self, seat_id: int, occupied: bool) -> Seat:
        seat = self._store.apply(seat_id, occupied, self._clock())
        if occupied:
            self._scheduler.arm(seat_id, seat.expires_at)
        else:
            self._scheduler.cancel(seat_id)
        self._publish_update(seat)
        return seat

    def _publish_update(self, seat: Seat) -> None:
        self._bus.publish(SeatEvent(SEAT_UPDATE, seat_payload(seat)))


def seat_payload(seat: Seat) -> dict:
    return SeatResponse.from_seat(seat).model_dump(mode="json", by_alias=True)


def parse_hardware_payload(raw: Union[str, bytes]) -> HardwareSeatEvent:
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedInputError(f"not utf-8: {raw!r}") from e
    text = raw.strip()
    if not text:
        raise MalformedInputError("empty line")
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise MalformedInputError(f"not JSON: {text!r}") from e
    try:
        return HardwareSeatEvent.model_validate(data)
    except ValidationError as e:
        raise MalformedInputError(f"unexpected shape: {text!r}") from e


def _label(occupied: bool) -> str:
    return "OCCUPIED" if occupied else "OPEN"
