"""Fixed-interval scheduler for weather alert poll cycles.

States are ``stopped`` and ``running``. Overlapping cycles are skipped:
APScheduler runs at most one timer instance, and the in-progress flag also
covers manual ``run_once`` calls racing the timer.
"""

import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from app.core.settings import settings
from app.schemas.weather_alert import CycleResult, SchedulerStatus
from app.services.weather_alerts import WeatherAlertPipeline
from app.utils.datetime import utc_now

logger = logging.getLogger("app.scheduler")

JOB_ID = "weather-alert-poll"


class WeatherAlertScheduler:

    def __init__(self, pipeline: WeatherAlertPipeline, interval_seconds: int | None = None):
        self.pipeline = pipeline
        self.interval_seconds = interval_seconds or settings.weather_alert_poll_interval
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._is_running = False
        self._cycle_in_progress = False
        self._last_result: Optional[CycleResult] = None

    @property
    def is_running(self) -> bool:
        return self._is_running

    async def start(self) -> bool:
        """Run one cycle now, then every ``interval_seconds``. No-op if already running."""
        if self._is_running:
            logger.info("Weather alert service is already running")
            return False

        logger.info("Starting automated weather alert service...")
        self._is_running = True
        await self.run_once()

        if not self._is_running:
            # stop() was called while the first cycle ran
            return True

        if self._scheduler is None:
            self._scheduler = AsyncIOScheduler(timezone="UTC")
        if not self._scheduler.running:
            self._scheduler.start()
        self._scheduler.add_job(
            self._tick,
            "interval",
            seconds=self.interval_seconds,
            id=JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        logger.info(
            f"Weather alert service started - checking every {self.interval_seconds / 60:g} minutes"
        )
        return True

    def stop(self) -> bool:
        """Stop arming new cycles; a cycle already running is left to finish."""
        if not self._is_running:
            logger.info("Weather alert service is not running")
            return False
        self._is_running = False
        if self._scheduler is not None and self._scheduler.get_job(JOB_ID):
            self._scheduler.remove_job(JOB_ID)
        logger.info("Weather alert service stopped")
        return True

    def shutdown(self) -> None:
        """Stop and release the underlying APScheduler (application exit)."""
        if self._is_running:
            self.stop()
        if self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        self._scheduler = None

    async def _tick(self) -> None:
        if not self._is_running:
            return
        await self.run_once()

    async def run_once(self) -> CycleResult:
        """Run a single cycle now; shared by the timer and manual triggers."""
        if self._cycle_in_progress:
            logger.warning("Weather alert cycle already in progress; skipping this run")
            now = utc_now()
            return CycleResult(started_at=now, finished_at=now, skipped=True)

        self._cycle_in_progress = True
        try:
            result = await self.pipeline.run_cycle()
        finally:
            self._cycle_in_progress = False
        self._last_result = result
        return result

    def next_scheduled_run(self):
        if not self._is_running or self._scheduler is None:
            return None
        job = self._scheduler.get_job(JOB_ID)
        return job.next_run_time if job else None

    def status(self) -> SchedulerStatus:
        return SchedulerStatus(
            is_running=self._is_running,
            cycle_in_progress=self._cycle_in_progress,
            poll_interval_seconds=self.interval_seconds,
            next_scheduled_run=self.next_scheduled_run(),
            last_run_at=self._last_result.started_at if self._last_result else None,
            last_result=self._last_result,
        )
