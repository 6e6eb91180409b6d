# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Completion notifications.

The pipeline emits one event per finished job. Delivering it (email,
chat, ...) is the job of whatever Notifier the host application injects.
"""

from typing import Protocol, TypedDict

import structlog

from drivebackup.jobs import BackupJob, JobStatus

logger = structlog.get_logger()


class Notification(TypedDict):
    subject: str
    text: str


class Notifier(Protocol):
    async def notify(self, job: BackupJob, message: Notification) -> None:
        ...


def build_notification(job: BackupJob, kind: str = "Backup") -> Notification:
    """Subject and body describing a finished backup or restore job."""
    if job.status == JobStatus.COMPLETED:
        text = f"{kind} completed successfully."
        if job.drive_file_id:
            text += f" Drive file id: {job.drive_file_id}"
        return Notification(subject=f"{kind} completed", text=text)

    return Notification(
        subject=f"{kind} failed",
        text=f"{kind} job {job.id} failed: {job.error or 'unknown error'}",
    )


class LogNotifier:
    """Default notifier: writes the event to the structured log."""

    async def notify(self, job: BackupJob, message: Notification) -> None:
        logger.info(
            "job_notification",
            job_id=job.id,
            status=job.status.value,
            subject=message["subject"],
            text=message["text"],
        )
