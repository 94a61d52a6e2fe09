"""Fixed-cadence scheduler with re-entrancy protection"""

import asyncio
from typing import Optional

import structlog

from arena_indexer.indexer.core import CycleResult, EventIndexer
from arena_indexer.monitoring import metrics

logger = structlog.get_logger()


class IndexerScheduler:
    """
    Runs the indexing cycle now and then every interval_seconds.

    A cycle requested while another is in progress is skipped, not queued.
    Errors never escape the background loop; run_cycle() lets them reach
    the caller so the HTTP trigger can report them.
    """

    def __init__(self, indexer: EventIndexer, interval_seconds: float = 10.0):
        """
        Initialize scheduler.

        Args:
            indexer: Core indexer
            interval_seconds: Delay between cycles (default 10 seconds)
        """
        self.indexer = indexer
        self.interval_seconds = interval_seconds
        self._cycle_in_progress = False
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._logger = logger.bind(component="indexer_scheduler")

    @property
    def cycle_in_progress(self) -> bool:
        return self._cycle_in_progress

    @property
    def is_running(self) -> bool:
        return self._running

    async def run_cycle(self) -> CycleResult:
        """
        Run one cycle unless one is already in progress.

        Returns:
            The cycle result, or a skipped result if a cycle was running
        """
        if self._cycle_in_progress:
            self._logger.info("indexer_cycle_skipped", reason="cycle_in_progress")
            metrics.indexer_cycles.labels(outcome="skipped").inc()
            return CycleResult(
                processed=0,
                last_version=self.indexer.last_processed_version,
                skipped=True,
            )

        self._cycle_in_progress = True
        try:
            result = await self.indexer.index_once()
            metrics.indexer_cycles.labels(outcome="success").inc()
            return result
        except Exception:
            metrics.indexer_cycles.labels(outcome="error").inc()
            raise
        finally:
            self._cycle_in_progress = False

    async def start(self) -> None:
        """Start the background loop"""
        if self._running:
            self._logger.warning("indexer_scheduler_already_running")
            return

        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        self._logger.info("indexer_scheduler_started", interval_seconds=self.interval_seconds)

    async def stop(self) -> None:
        """Stop the background loop gracefully"""
        if not self._running:
            return

        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                self._logger.info("indexer_scheduler_task_cancelled")
        self._logger.info("indexer_scheduler_stopped")

    async def tick(self) -> Optional[CycleResult]:
        """One scheduled cycle; failures are logged and swallowed"""
        try:
            return await self.run_cycle()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._logger.error(
                "indexer_cycle_failed",
                error=str(e),
                error_type=type(e).__name__,
                last_processed_version=self.indexer.last_processed_version,
            )
            return None

    async def _run_loop(self) -> None:
        """Run immediately, then every interval"""
        self._logger.info("indexer_loop_started")
        try:
            while self._running:
                await self.tick()
                await asyncio.sleep(self.interval_seconds)
        except asyncio.CancelledError:
            self._logger.info("indexer_loop_cancelled")
        finally:
            self._logger.info("indexer_loop_exited")
