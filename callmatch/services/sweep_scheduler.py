import asyncio
import logging
from typing import Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from callmatch.config import POLICY, MatchingPolicy
from callmatch.database import AsyncSessionLocal
from callmatch.services.sweep_service import SweepReport, SweepService

logger = logging.getLogger(__name__)


class SweepScheduler:
    """Runs the reconciliation sweeps on a fixed interval inside the event loop."""

    def __init__(
        self,
        policy: MatchingPolicy = POLICY,
        session_factory: Optional[async_sessionmaker] = None,
    ):
        self.policy = policy
        self.session_factory = session_factory or AsyncSessionLocal
        self._task: Optional[asyncio.Task] = None
        self._stopping = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._stopping.clear()
        self._task = asyncio.create_task(self._loop(), name="callmatch-sweeps")
        logger.info(
            "Sweep scheduler started, interval=%ss", self.policy.sweep_interval_seconds
        )

    async def stop(self) -> None:
        task = self._task
        if task is None or task.done():
            return
        self._stopping.set()
        await task
        self._task = None
        logger.info("Sweep scheduler stopped")

    async def run_once(self) -> SweepReport:
        async with self.session_factory() as session:
            return await SweepService(session, policy=self.policy).run_all()

    async def _loop(self) -> None:
        while not self._stopping.is_set():
            try:
                await self.run_once()
            except Exception as e:
                # Keep the loop alive; the next tick retries
                logger.error("Sweep run failed: %s", e, exc_info=True)
            try:
                await asyncio.wait_for(
                    self._stopping.wait(), timeout=self.policy.sweep_interval_seconds
                )
            except asyncio.TimeoutError:
                pass
