from __future__ import annotations

import logging
from datetime import datetime, timezone

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from paybot.core.config import get_settings
from paybot.core.container import ServiceHub
from paybot.services.pipeline import summarize

logger = logging.getLogger(__name__)


class WorkerScheduler:
    def __init__(self, hub: ServiceHub) -> None:
        self.hub = hub
        self.settings = get_settings()
        self.scheduler = AsyncIOScheduler(timezone="UTC")

    async def _poll_mentions(self) -> None:
        try:
            report = await self.hub.pipeline.run_cycle()
            logger.info("mentions_polled", extra={"event": "mentions_polled", "count": report.processed, **summarize(report)})
        except Exception as exc:  # noqa: BLE001
            logger.exception("poll_task_failed", extra={"event": "poll_task_failed", "error": str(exc)})

    async def _report_tracker(self) -> None:
        logger.info(
            "tracker_size",
            extra={"event": "tracker_size", "count": len(self.hub.tracker)},
        )

    def start(self) -> None:
        self.scheduler.add_job(
            self._poll_mentions,
            "interval",
            seconds=max(5, int(self.settings.poll_interval_sec)),
            max_instances=1,
            coalesce=True,
            next_run_time=datetime.now(timezone.utc),
        )
        self.scheduler.add_job(self._report_tracker, "interval", minutes=15, max_instances=1)
        self.scheduler.start()

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
