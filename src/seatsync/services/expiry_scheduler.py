from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from seatsync.services.seat_store import utcnow

logger = logging.getLogger(__name__)

ExpireCallback = Callable[[int, datetime], Awaitable[None]]


@dataclass
class _Timer:
    task: asyncio.Task
    fire_at: datetime


class ExpiryScheduler:
    """One cancellable auto-release timer per seat.

    The scheduler never touches the seat store: when a timer fires it calls
    on_expire(seat_id, fired_at) and the router decides what happens.
    arm/cancel are synchronous, so replacing a timer cannot be interleaved
    with anything else running on the event loop.
    """

    def __init__(
        self,
        on_expire: Optional[ExpireCallback] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._on_expire = on_expire
        self._clock = clock
        self._timers: dict[int, _Timer] = {}

    def set_callback(self, on_expire: ExpireCallback) -> None:
        self._on_expire = on_expire

    def arm(self, seat_id: int, fire_at: datetime) -> None:
        """Replace any outstanding timer for seat_id with one firing at fire_at."""
        self.cancel(seat_id)
        delay = max(0.0, (fire_at - self._clock()).total_seconds())
        task = asyncio.get_running_loop().create_task(
            self._run(seat_id, delay), name=f"seat-expiry-{seat_id}"
        )
        self._timers[seat_id] = _Timer(task=task, fire_at=fire_at)
        logger.debug("Armed expiry for seat %d at %s", seat_id, fire_at.isoformat())

    def cancel(self, seat_id: int) -> None:
        timer = self._timers.pop(seat_id, None)
        if timer is None:
            return
        timer.task.cancel()
        logger.debug("Cancelled expiry for seat %d", seat_id)

    def is_armed(self, seat_id: int) -> bool:
        timer = self._timers.get(seat_id)
        return timer is not None and not timer.task.done()

    def fire_time(self, seat_id: int) -> Optional[datetime]:
        timer = self._timers.get(seat_id)
        if timer is None or timer.task.done():
            return None
        return timer.fire_at

    def armed_seat_ids(self) -> list[int]:
        return sorted(seat_id for seat_id in self._timers if self.is_armed(seat_id))

    async def shutdown(self) -> None:
        """Cancel every outstanding timer and wait for them to finish."""
        timers = list(self._timers.values())
        self._timers.clear()
        for timer in timers:
            timer.task.cancel()
        await asyncio.gather(*(t.task for t in timers), return_exceptions=True)
        logger.info("Expiry scheduler stopped (%d timers cancelled)", len(timers))

    async def _run(self, seat_id: int, delay: float) -> None:
        await asyncio.sleep(delay)
        fired_at = self._clock()
        timer = self._timers.get(seat_id)
        if timer is not None and timer.task is asyncio.current_task():
            # A fired timer is no longer live; the router may re-arm from the callback.
            del self._timers[seat_id]
        if self._on_expire is None:
            logger.warning("Expiry fired for seat %d with no handler", seat_id)
            return
        try:
            await self._on_expire(seat_id, fired_at)
        except Exception:
            logger.exception("Auto-release for seat %d failed", seat_id)
