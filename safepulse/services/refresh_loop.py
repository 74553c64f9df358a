"""
refresh_loop.py — Periodic cache sweep + global snapshot push.

Every ``interval_seconds``:
  1. sweep expired entries out of the metrics cache
  2. recompute the global admin snapshot (always fresh, never from cache)
  3. broadcast it to dashboard subscribers as METRICS_EVENT

Lifecycle is explicit and owned by the hosting process:

    loop = MetricsRefreshLoop(metrics_service, hub, interval_seconds=30)
    loop.start()          # FastAPI lifespan startup
    ...
    await loop.stop()     # FastAPI lifespan shutdown

start() is a no-op when the loop is disabled (ENVIRONMENT=test), so the
test process never carries a live timer. tick() runs one iteration
directly and is what the tests drive.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Optional

from safepulse.core.publisher import Publisher
from safepulse.models.metrics import MetricsSnapshot
from safepulse.services.metrics_service import MetricsService

logger = logging.getLogger(__name__)

METRICS_EVENT = "metrics:update"


class MetricsRefreshLoop:
    def __init__(
        self,
        service: MetricsService,
        publisher: Optional[Publisher],
        *,
        interval_seconds: float = 30.0,
        enabled: bool = True,
    ):
        self.service = service
        self.publisher = publisher
        self.interval_seconds = interval_seconds
        self.enabled = enabled
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if not self.enabled:
            logger.info("Metrics refresh loop disabled")
            return
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="metrics-refresh-loop")
        logger.info("Metrics refresh loop started (every %.0fs)", self.interval_seconds)

    async def stop(self) -> None:
        """Cancel the timer, including a tick that is mid-recompute."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.info("Metrics refresh loop stopped")

    async def tick(self) -> Optional[MetricsSnapshot]:
        """One iteration. Returns the pushed snapshot, or None without a publisher."""
        self.service.sweep_cache()
        if self.publisher is None:
            return None

        snapshot = await self.service.refresh_global()
        await self.publisher.broadcast(METRICS_EVENT, snapshot.model_dump(mode="json", by_alias=True))
        return snapshot

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self.tick()
            except Exception:
                # One bad tick must not kill the timer
                logger.exception("Metrics refresh loop error")
