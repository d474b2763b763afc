from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from fastapi import WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from seatsync.api.schemas import SeatErrorMessage, ViewerRequest
from seatsync.exceptions import InvalidSeatStateError, SeatNotFoundError
from seatsync.services.event_bus import SeatEventBus, Subscription
from seatsync.services.event_router import EventRouter, seat_payload

logger = logging.getLogger(__name__)


class ViewerConnectionManager:
    """Live viewers over WebSocket.

    Each viewer gets its own bus subscription drained by a sender task, so a
    slow socket only ever backs up its own queue.
    """

    def __init__(self, router: EventRouter, bus: SeatEventBus) -> None:
        self._router = router
        self._bus = bus
        self._connections: dict[WebSocket, Subscription] = {}

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    async def serve(self, websocket: WebSocket) -> None:
        await websocket.accept()
        subscription = self._bus.subscribe()
        self._connections[websocket] = subscription
        logger.info("Client connected: %s", _client_name(websocket))
        sender: Optional[asyncio.Task] = None
        try:
            await websocket.send_json(
                {"event": "initialState", "data": [seat_payload(s) for s in self._router.snapshot()]}
            )
            sender = asyncio.create_task(self._forward(websocket, subscription))
            while True:
                message = await websocket.receive_text()
                await self._handle_request(websocket, message)
        except WebSocketDisconnect:
            pass
        finally:
            if sender is not None:
                sender.cancel()
                await asyncio.gather(sender, return_exceptions=True)
            self._bus.unsubscribe(subscription)
            self._connections.pop(websocket, None)
            logger.info("Client disconnected: %s", _client_name(websocket))

    async def _forward(self, websocket: WebSocket, subscription: Subscription) -> None:
        while True:
            event = await subscription.get()
            try:
                await websocket.send_json(event.to_message())
            except Exception:
                logger.warning("Could not deliver %s to %s", event.kind, _client_name(websocket))
                self._bus.unsubscribe(subscription)
                return

    async def _handle_request(self, websocket: WebSocket, message: str) -> None:
        try:
            request = ViewerRequest.model_validate_json(message)
        except ValidationError:
            logger.warning("Ignoring malformed viewer request: %r", message)
            await self._send_error(websocket, None, "Malformed request")
            return
        try:
            if request.action == "override":
                await self._router.override(request.seat_id)
            else:
                await self._router.extend(request.seat_id)
        except (SeatNotFoundError, InvalidSeatStateError) as e:
            await self._send_error(websocket, request.seat_id, str(e))

    async def _send_error(self, websocket: WebSocket, seat_id: Any, message: str) -> None:
        error = SeatErrorMessage(seat_id=seat_id, message=message)
        await websocket.send_json({"event": "error", "data": error.model_dump(mode="json", by_alias=True)})


def _client_name(websocket: WebSocket) -> str:
    client = websocket.client
    if client is None:
        return "unknown"
    return f"{client.host}:{client.port}"
