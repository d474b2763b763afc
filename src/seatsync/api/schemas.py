from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, StrictBool, StrictInt
from pydantic.alias_generators import to_camel

from seatsync.services.seat_store import Seat


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SeatResponse(CamelModel):
    id: int
    occupied: bool
    updated_at: datetime
    expires_at: Optional[datetime] = None

    @classmethod
    def from_seat(cls, seat: Seat) -> SeatResponse:
        return cls(
            id=seat.id,
            occupied=seat.occupied,
            updated_at=seat.updated_at,
            expires_at=seat.expires_at,
        )


class SeatExtendResponse(CamelModel):
    success: bool = True
    message: str
    seat: SeatResponse


class SeatTimeoutMessage(CamelModel):
    seat_id: int
    message: str


class SeatExtendedMessage(CamelModel):
    seat_id: int
    message: str
    expires_at: datetime


class SeatErrorMessage(CamelModel):
    seat_id: Optional[int] = None
    message: str


class HardwareSeatEvent(CamelModel):
    """One line from the button controller: {"seatId": 2, "occupied": true}."""

    seat_id: StrictInt
    occupied: StrictBool


class ViewerRequest(CamelModel):
    action: Literal["override", "extend"]
    seat_id: StrictInt


class HealthResponse(BaseModel):
    status: str = "ok"
    seats: int
    hardware: bool
