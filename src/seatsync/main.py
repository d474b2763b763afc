import logging
from contextlib import asynccontextmanager
from datetime import timedelta

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from seatsync.api.routes import router, ws_router
from seatsync.config import settings
from seatsync.infrastructure.connection_manager import ViewerConnectionManager
from seatsync.infrastructure.serial_link import SerialSeatLink
from seatsync.services.event_bus import SeatEventBus
from seatsync.services.event_router import EventRouter
from seatsync.services.expiry_scheduler import ExpiryScheduler
from seatsync.services.seat_store import SeatStore

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # All seats start available; the controller's boot messages are not needed
    store = SeatStore(settings.seat_count, timedelta(seconds=settings.seat_timeout_seconds))
    scheduler = ExpiryScheduler()
    bus = SeatEventBus(queue_size=settings.subscriber_queue_size)
    serial_link = SerialSeatLink(
        port=settings.arduino_port,
        baud_rate=settings.serial_baud_rate,
        reconnect_delay=settings.serial_reconnect_delay,
        outbox_size=settings.serial_outbox_size,
        enabled=settings.serial_enabled,
    )
    event_router = EventRouter(store, scheduler, bus, serial_link)
    serial_link.set_handler(event_router.handle_hardware_payload)

    app.state.event_router = event_router
    app.state.serial_link = serial_link
    app.state.connection_manager = ViewerConnectionManager(event_router, bus)
    logger.info(
        "Tracking %d seats (auto-release after %.0f seconds)",
        settings.seat_count,
        settings.seat_timeout_seconds,
    )

    await serial_link.start()

    yield

    await serial_link.stop()
    await scheduler.shutdown()


app = FastAPI(
    title="Seat Sync",
    lifespan=lifespan,
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)
app.include_router(router)
app.include_router(ws_router)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"detail": exc.errors()},
    )


def run() -> None:
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    run()
