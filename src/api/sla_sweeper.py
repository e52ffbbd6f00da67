import asyncio
import logging
from typing import Callable, Optional

from src.core.work_requests import WorkflowEngine
from src.core.work_requests.models import SlaSweepResult

logger = logging.getLogger(__name__)


class SlaSweeper:
    """Periodic background task: SLA classification plus a routing retry for unassigned requests.

    The sweep only reads request state; the routing retry goes through the normal
    version-checked transition path.
    """

    def __init__(
        self,
        *,
        engine_factory: Callable[[], WorkflowEngine],
        interval_seconds: int,
    ) -> None:
        self._engine_factory = engine_factory
        self._interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self._interval_seconds <= 0:
            logger.info("SLA sweeper disabled.")
            return
        if self.running:
            return
        self._task = asyncio.create_task(self._run())
        logger.info("SLA sweeper started. IntervalSeconds=%s", self._interval_seconds)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("SLA sweeper stopped.")

    def run_once(self) -> tuple[SlaSweepResult, list[str]]:
        engine = self._engine_factory()
        result = engine.sla_sweep()
        rerouted = engine.reroute_unassigned()
        if result.overdue:
            logger.warning(
                "Overdue work requests detected. Count=%s",
                len(result.overdue),
                extra={"extra_fields": {"overdue_request_ids": result.overdue}},
            )
        if rerouted:
            logger.info(
                "Unassigned work requests rerouted. Count=%s",
                len(rerouted),
                extra={"extra_fields": {"rerouted_request_ids": rerouted}},
            )
        return result, rerouted

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval_seconds)
            try:
                await asyncio.to_thread(self.run_once)
            except Exception:
                logger.exception("SLA sweep iteration failed.")
