"""Background polling loop for scheduled pulls."""
from __future__ import annotations
import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class PollingScheduler:
    def __init__(
        self,
        interval_seconds: float,
        job: Callable[[], Awaitable[object]],
        name: str = "scheduled-pull",
    ):
        self.interval_seconds = interval_seconds
        self.job = job
        self.name = name
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name=self.name)
        logger.info(
            "Started %s every %ss", self.name, self.interval_seconds
        )

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Stopped %s", self.name)

    async def run_once(self) -> object:
        try:
            return await self.job()
        except Exception:  # noqa: BLE001
            # A failed run is retried on the next tick
            logger.exception("%s run failed", self.name)
            return None

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            await self.run_once()
