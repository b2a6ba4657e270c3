"""Background scheduler for periodic sync runs."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from booru_sync.adapters.booru.sync.cancellation import CancellationToken
from booru_sync.core.time_utils import utc_now

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from booru_sync.adapters.booru.sync.report import SyncRunResult
    from booru_sync.config import AppConfig

logger = logging.getLogger(__name__)

SYNC_JOB_ID = "booru_sync"


class SchedulerService:
    """Runs the sync every ``BOORU_SYNC_AUTORUN_INTERVAL_HOURS`` hours."""

    def __init__(
        self,
        cfg: AppConfig,
        run_sync: Callable[[CancellationToken], Awaitable[SyncRunResult]] | None = None,
        *,
        token: CancellationToken | None = None,
    ) -> None:
        """Initialize scheduler service.

        Args:
            cfg: Application configuration
            run_sync: Coroutine function running one sync; defaults to a
                :class:`BooruSyncService` built from ``cfg``
            token: Cancelled on :meth:`stop` to interrupt a running sync
        """
        self.cfg = cfg
        self._run_sync = run_sync
        self.token = token or CancellationToken()
        self._scheduler: AsyncIOScheduler | None = None
        self._started = False
        self.last_result: SyncRunResult | None = None

    async def start(self, *, run_immediately: bool = False) -> None:
        """Start the scheduler with the sync job if autorun is enabled."""
        if self._started:
            logger.warning("scheduler_already_started")
            return

        interval_hours = self.cfg.sync.autorun_interval_hours
        self._scheduler = AsyncIOScheduler()

        if interval_hours > 0:
            job_kwargs = {"next_run_time": utc_now()} if run_immediately else {}
            self._scheduler.add_job(
                self._run_scheduled_sync,
                trigger=IntervalTrigger(hours=interval_hours),
                id=SYNC_JOB_ID,
                name="Booru Sync",
                replace_existing=True,
                max_instances=1,  # Prevent overlapping runs
                **job_kwargs,
            )
            logger.info(
                "scheduler_sync_job_added",
                extra={"job_id": SYNC_JOB_ID, "interval_hours": interval_hours},
            )
        else:
            logger.info("scheduler_sync_job_skipped", extra={"interval_hours": interval_hours})

        self._scheduler.start()
        self._started = True
        logger.info("scheduler_started")

    async def stop(self) -> None:
        """Cancel any running sync and stop the scheduler."""
        self.token.cancel()
        if self._scheduler and self._started:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
            self._started = False
            logger.info("scheduler_stopped")

    async def _run_scheduled_sync(self) -> None:
        correlation_id = f"scheduled_{utc_now().strftime('%Y%m%d_%H%M%S')}"
        logger.info("scheduled_sync_starting", extra={"cid": correlation_id})

        try:
            run_sync = self._run_sync or self._default_run_sync
            result = await run_sync(self.token.child())
            self.last_result = result
            logger.info(
                "scheduled_sync_complete",
                extra={
                    "cid": correlation_id,
                    "success": result.success,
                    "new": {key: report.total_new for key, report in result.reports.items()},
                    "duration_seconds": result.duration_seconds,
                    "errors": len(result.errors),
                },
            )
        except Exception as e:
            logger.exception(
                "scheduled_sync_failed",
                extra={"cid": correlation_id, "error": str(e)},
            )

    async def _default_run_sync(self, token: CancellationToken) -> SyncRunResult:
        from booru_sync.adapters.booru.sync.service import BooruSyncService

        return await BooruSyncService(self.cfg).run(token)

    def get_next_run_time(self, job_id: str = SYNC_JOB_ID) -> datetime | None:
        """Get next scheduled run time for a job, or None if not scheduled."""
        if not self._scheduler or not self._started:
            return None
        job = self._scheduler.get_job(job_id)
        return job.next_run_time if job else None

    @property
    def is_running(self) -> bool:
        return self._started and self._scheduler is not None
