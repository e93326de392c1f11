"""
Cache Maintenance Scheduler

Runs the cache sweep periodically with APScheduler so the durable store does
not grow without bound in long-running processes.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from farmdata.core.config import settings
from farmdata.services.cache_store import CacheStore

logger = logging.getLogger(__name__)

SWEEP_JOB_ID = "cache-sweep"


class CacheMaintenanceScheduler:
    """Periodic cache sweep on the running event loop"""

    def __init__(
        self,
        cache: CacheStore,
        interval_minutes: Optional[int] = None,
        max_age_ms: Optional[int] = None,
    ):
        self.cache = cache
        self.interval_minutes = interval_minutes or settings.CACHE_SWEEP_INTERVAL_MINUTES
        self.max_age_ms = max_age_ms or settings.CACHE_SWEEP_MAX_AGE_MS
        self.scheduler: Optional[AsyncIOScheduler] = None
        self.is_running = False
        self.last_removed: Optional[int] = None
        self.last_run: Optional[datetime] = None

    async def start(self):
        """Start sweeping; must be called from inside a running event loop"""
        if self.is_running:
            return

        self.scheduler = AsyncIOScheduler(
            timezone="UTC",
            job_defaults={
                "coalesce": True,
                "max_instances": 1,
                "misfire_grace_time": 300,
            },
        )
        self.scheduler.add_listener(self._job_executed_listener, EVENT_JOB_EXECUTED)
        self.scheduler.add_listener(self._job_error_listener, EVENT_JOB_ERROR)
        self.scheduler.add_job(
            func=self._sweep_job,
            trigger=IntervalTrigger(minutes=self.interval_minutes),
            id=SWEEP_JOB_ID,
            name="Cache sweep",
            replace_existing=True,
        )
        self.scheduler.start()
        self.is_running = True
        logger.info(f"Cache sweep scheduled every {self.interval_minutes} minutes")

    async def stop(self):
        if not self.is_running or not self.scheduler:
            return
        self.scheduler.shutdown(wait=False)
        self.is_running = False
        logger.info("Cache sweep scheduler stopped")

    async def _sweep_job(self) -> int:
        removed = self.cache.sweep(self.max_age_ms)
        self.last_removed = removed
        self.last_run = datetime.now(timezone.utc)
        return removed

    async def run_now(self) -> int:
        """Sweep immediately, outside the schedule"""
        return await self._sweep_job()

    def _job_executed_listener(self, event):
        logger.info(f"Job '{event.job_id}' finished, removed {self.last_removed} entries")

    def _job_error_listener(self, event):
        logger.error(f"Job '{event.job_id}' failed: {event.exception}", exc_info=event.exception)

    def get_job_status(self) -> Dict[str, Any]:
        if not self.scheduler:
            return {"status": "not_started", "jobs": []}

        jobs = []
        for job in self.scheduler.get_jobs():
            jobs.append({
                "id": job.id,
                "name": job.name,
                "next_run": job.next_run_time.isoformat() if job.next_run_time else None,
                "trigger": str(job.trigger),
            })
        return {
            "status": "running" if self.is_running else "stopped",
            "jobs": jobs,
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "last_removed": self.last_removed,
        }
