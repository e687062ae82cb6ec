"""Background expiry sweeper.

Polls the containers table for expired containers and reclaims them.
Runs as an asyncio task within the FastAPI process.

No locking: a second sweeper instance only causes redundant deletes, which
every reclaim step tolerates.
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from sharebox.models.base import utcnow
from sharebox.services.lifecycle import ContainerLifecycle
from sharebox.services.repository import ContainerRepository

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    expired: int = 0
    reclaimed: int = 0
    failed: int = 0
    leaked_blobs: int = 0


class ExpirySweeper:
    def __init__(
        self,
        repository: ContainerRepository,
        lifecycle: ContainerLifecycle,
        interval_seconds: float = 60.0,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.repository = repository
        self.lifecycle = lifecycle
        self.interval_seconds = interval_seconds
        self.clock = clock
        self._task: asyncio.Task | None = None

    async def run_once(self) -> SweepResult:
        """Reclaim every container that expired before now. One failure never stops the rest."""
        result = SweepResult()
        expired = await self.repository.find_expired(self.clock())
        result.expired = len(expired)
        if expired:
            logger.info(f"Sweeping {len(expired)} expired container(s)")

        for container in expired:
            try:
                report = await self.lifecycle.reclaim(container)
            except Exception:
                result.failed += 1
                logger.exception(f"Reclaim of container {container.public_id} failed")
                continue
            result.reclaimed += 1
            result.leaked_blobs += len(report.leaked)
        return result

    async def run_forever(self) -> None:
        """Main sweeper loop. Sweeps every `interval_seconds`."""
        logger.info(f"Expiry sweeper started (interval={self.interval_seconds}s)")
        while True:
            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Sweep failed: {e}")
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run_forever())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Expiry sweeper stopped")
