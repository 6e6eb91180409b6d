# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Example: embedding drivebackup in a long-running application.

Runs one manual backup at startup, prints the ledger, then keeps the
weekly schedule running until interrupted.

Run with:
    python -m examples.basic_app

Environment variables:
    MONGO_URI: MongoDB connection string
    BACKUP_ENCRYPTION_KEY: At least 32 characters to encrypt uploads
    GOOGLE_DRIVE_CLIENT_ID / GOOGLE_DRIVE_CLIENT_SECRET / GOOGLE_DRIVE_REDIRECT_URI
    (authorize once with `drivebackup auth-url` and `drivebackup auth-code`)
"""

import asyncio

import structlog

from drivebackup import BackupScheduler, JobStatus, create_config_from_env, create_orchestrator
from drivebackup.cli import configure_logging
from drivebackup.notify import Notification

logger = structlog.get_logger()


class ConsoleNotifier:
    """Stand-in for an email sender."""

    async def notify(self, job, message: Notification) -> None:
        print(f"[{job.status.value}] {message['subject']}: {message['text']}")


async def main() -> None:
    configure_logging()
    config = create_config_from_env()

    orchestrator = await create_orchestrator(config, notifier=ConsoleNotifier())

    job = await orchestrator.start_backup(initiated_by="startup")
    if job.status == JobStatus.FAILED:
        logger.warning("startup_backup_failed", error=job.error)

    for past in await orchestrator.list_history(limit=5):
        print(past.started_at.isoformat(), past.status.value, past.drive_file_id or "-")

    scheduler = BackupScheduler(orchestrator, config)
    scheduler.start()
    logger.info("next_backup", at=scheduler.next_run_time())

    try:
        await asyncio.Event().wait()
    finally:
        scheduler.shutdown()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
