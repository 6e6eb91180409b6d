# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
drivebackup Scheduler - Cron-triggered backups.

Uses APScheduler's AsyncIOScheduler, so start() must be called from a
running event loop. A tick that fires while another run is active is
skipped, and no failure ever escapes the callback.
"""

from datetime import datetime

import structlog

from drivebackup.config import BackupConfig
from drivebackup.core import BackupOrchestrator
from drivebackup.exceptions import AlreadyRunningError
from drivebackup.jobs import JobType

logger = structlog.get_logger()

JOB_ID = "drivebackup_scheduled"


class BackupScheduler:
    """
    Registers the scheduled backup with APScheduler.

    Args:
        orchestrator: Orchestrator that executes the runs
        config: Supplies the crontab expression
    """

    def __init__(self, orchestrator: BackupOrchestrator, config: BackupConfig):
        from apscheduler.schedulers.asyncio import AsyncIOScheduler

        self.orchestrator = orchestrator
        self.config = config
        self._scheduler = AsyncIOScheduler(timezone="UTC")

    @property
    def running(self) -> bool:
        return self._scheduler.running

    def start(self) -> None:
        from apscheduler.triggers.cron import CronTrigger

        self._scheduler.add_job(
            self._run_scheduled,
            trigger=CronTrigger.from_crontab(self.config.cron, timezone="UTC"),
            id=JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self._scheduler.start()

        next_run = self.next_run_time()
        logger.info(
            "scheduler_started",
            cron=self.config.cron,
            next_run=next_run.isoformat() if next_run else None,
        )

    def shutdown(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("scheduler_stopped")

    def next_run_time(self) -> datetime | None:
        job = self._scheduler.get_job(JOB_ID)
        return job.next_run_time if job else None

    async def _run_scheduled(self) -> None:
        """Run one scheduled backup."""
        logger.info("scheduled_backup_starting")
        try:
            job = await self.orchestrator.start_backup(JobType.SCHEDULED, None)
            logger.info(
                "scheduled_backup_finished",
                job_id=job.id,
                status=job.status.value,
                error=job.error,
            )
        except AlreadyRunningError as e:
            logger.warning("scheduled_backup_skipped", reason=str(e))
        except Exception as e:
            logger.error("scheduled_backup_failed", error=str(e))
