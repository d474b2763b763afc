from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, WebSocket

from seatsync.api.schemas import HealthResponse, SeatExtendResponse, SeatResponse
from seatsync.exceptions import InvalidSeatStateError, SeatNotFoundError
from seatsync.infrastructure.connection_manager import ViewerConnectionManager
from seatsync.infrastructure.serial_link import SerialSeatLink
from seatsync.services.event_router import EventRouter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["api"])
ws_router = APIRouter()


def get_event_router(request: Request) -> EventRouter:
    return request.app.state.event_router


def get_serial_link(request: Request) -> SerialSeatLink:
    return request.app.state.serial_link


@router.get("/health", response_model=HealthResponse)
async def health(
    event_router: EventRouter = Depends(get_event_router),
    serial_link: SerialSeatLink = Depends(get_serial_link),
) -> HealthResponse:
    return HealthResponse(seats=len(event_router.snapshot()), hardware=serial_link.connected)


@router.get("/seats", response_model=list[SeatResponse])
async def list_seats(event_router: EventRouter = Depends(get_event_router)) -> list[SeatResponse]:
    return [SeatResponse.from_seat(seat) for seat in event_router.snapshot()]


@router.get("/seats/{seat_id}", response_model=SeatResponse)
async def get_seat(seat_id: int, event_router: EventRouter = Depends(get_event_router)) -> SeatResponse:
    try:
        seat = event_router.get_seat(seat_id)
    except SeatNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return SeatResponse.from_seat(seat)


@router.post("/seats/{seat_id}/override", response_model=SeatResponse)
async def override_seat(seat_id: int, event_router: EventRouter = Depends(get_event_router)) -> SeatResponse:
    try:
        seat = await event_router.override(seat_id)
    except SeatNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return SeatResponse.from_seat(seat)


@router.post("/seats/{seat_id}/extend", response_model=SeatExtendResponse)
async def extend_seat(seat_id: int, event_router: EventRouter = Depends(get_event_router)) -> SeatExtendResponse:
    try:
        seat = await event_router.extend(seat_id)
    except SeatNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except InvalidSeatStateError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return SeatExtendResponse(
        message=f"Seat {seat_id} extended",
        seat=SeatResponse.from_seat(seat),
    )


@ws_router.websocket("/ws/seats")
async def seats_websocket(websocket: WebSocket) -> None:
    manager: ViewerConnectionManager = websocket.app.state.connection_manager
    await manager.serve(websocket)
