# app/x402/sweeper.py
"""Periodic background expiry of stale request records."""
import asyncio
import logging
from typing import Optional

from app.core.config import settings
from app.x402.registry import RequestRegistry

logger = logging.getLogger(__name__)


class ExpirySweeper:
    """Runs RequestRegistry.sweep_expired every SWEEP_INTERVAL_SECONDS."""

    def __init__(self, registry: RequestRegistry, interval_seconds: Optional[float] = None):
        self._registry = registry
        self._interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None

    @property
    def interval_seconds(self) -> float:
        if self._interval_seconds is not None:
            return self._interval_seconds
        return settings.SWEEP_INTERVAL_SECONDS

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                result = self._registry.sweep_expired()
            except Exception as e:
                logger.error(f"Expiry sweep failed: {e}", exc_info=True)
                continue
            if result["expired"] or result["evicted"]:
                logger.info(
                    f"Expiry sweep: {result['expired']} expired, {result['evicted']} evicted"
                )

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.info(f"Started expiry sweeper (every {self.interval_seconds}s)")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Stopped expiry sweeper")
