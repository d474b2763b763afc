from __future__ import annotations

import dataclasses
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Optional

from seatsync.exceptions import InvalidSeatStateError, SeatNotFoundError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclasses.dataclass(frozen=True)
class Seat:
    id: int
    occupied: bool
    updated_at: datetime
    expires_at: Optional[datetime] = None

    def remaining_seconds(self, now: datetime) -> Optional[float]:
        """Time left before auto-release, derived from expires_at at read time."""
        if self.expires_at is None:
            return None
        return max(0.0, (self.expires_at - now).total_seconds())


class SeatStore:
    """Canonical state of the fixed set of seats 1..N.

    Seats are immutable values replaced wholesale on each mutation, so a
    snapshot taken with get_all() can never observe a half-applied update.
    The store does not notify anyone and does not manage timers.
    """

    def __init__(
        self,
        seat_count: int,
        timeout: timedelta,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        if seat_count < 1:
            raise ValueError("seat_count must be at least 1")
        self._timeout = timeout
        started_at = clock()
        self._seats: dict[int, Seat] = {
            seat_id: Seat(id=seat_id, occupied=False, updated_at=started_at)
            for seat_id in range(1, seat_count + 1)
        }

    @property
    def timeout(self) -> timedelta:
        return self._timeout

    @property
    def seat_ids(self) -> list[int]:
        return list(self._seats)

    def __len__(self) -> int:
        return len(self._seats)

    def __contains__(self, seat_id: object) -> bool:
        return seat_id in self._seats

    def get(self, seat_id: int) -> Seat:
        seat = self._seats.get(seat_id)
        if seat is None:
            raise SeatNotFoundError(seat_id)
        return seat

    def get_all(self) -> list[Seat]:
        return [self._seats[seat_id] for seat_id in sorted(self._seats)]

    def apply(self, seat_id: int, occupied: bool, now: datetime) -> Seat:
        """Set occupancy; expires_at follows occupancy."""
        self.get(seat_id)
        seat = Seat(
            id=seat_id,
            occupied=occupied,
            updated_at=now,
            expires_at=now + self._timeout if occupied else None,
        )
        self._seats[seat_id] = seat
        return seat

    def refresh_expiry(self, seat_id: int, now: datetime) -> Seat:
        current = self.get(seat_id)
        if not current.occupied:
            raise InvalidSeatStateError(seat_id, "cannot extend an unoccupied seat")
        seat = dataclasses.replace(current, updated_at=now, expires_at=now + self._timeout)
        self._seats[seat_id] = seat
        return seat
