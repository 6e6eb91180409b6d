# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
drivebackup Job Ledger - Append-only audit trail of pipeline runs.

Every backup and restore run writes one row that is created when the run
starts and updated in place as it progresses. Rows are never deleted; the
module deliberately exposes no delete function.
"""

import json
from datetime import datetime
from pathlib import Path
from typing import Dict, List

import aiosqlite
import structlog

from drivebackup.exceptions import LedgerError
from drivebackup.jobs import BackupJob, JobStatus, JobType

logger = structlog.get_logger()

_COLUMNS = (
    "id, type, status, started_at, finished_at, size_bytes, drive_file_id, "
    "drive_folder_id, encrypted, retention_kept, error, initiated_by, progress, "
    "files, summary_drive_file_id"
)


async def init_ledger_db(db_path: Path) -> None:
    """
    Initialize the ledger database schema.

    Creates tables if they don't exist. This is idempotent.

    Args:
        db_path: Path to the SQLite database file
    """
    try:
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(db_path) as db:
            await db.execute("""
                CREATE TABLE IF NOT EXISTS backup_jobs (
                    id TEXT PRIMARY KEY,
                    type TEXT NOT NULL,
                    status TEXT NOT NULL,
                    started_at TEXT NOT NULL,
                    finished_at TEXT,
                    size_bytes INTEGER NOT NULL DEFAULT 0,
                    drive_file_id TEXT,
                    drive_folder_id TEXT,
                    encrypted INTEGER NOT NULL DEFAULT 0,
                    retention_kept INTEGER NOT NULL DEFAULT 0,
                    error TEXT,
                    initiated_by TEXT,
                    progress INTEGER NOT NULL DEFAULT 0,
                    files TEXT NOT NULL DEFAULT '[]',
                    summary_drive_file_id TEXT
                )
            """)

            await db.execute("""
                CREATE INDEX IF NOT EXISTS idx_backup_jobs_started_at
                ON backup_jobs(started_at)
            """)

            await db.execute("""
                CREATE INDEX IF NOT EXISTS idx_backup_jobs_status
                ON backup_jobs(status)
            """)

            await db.commit()

        logger.info("ledger_db_initialized", db_path=str(db_path))

    except Exception as e:
        raise LedgerError(
            f"Failed to initialize ledger database: {e}",
            details={"db_path": str(db_path)},
        )


def _job_params(job: BackupJob) -> tuple:
    return (
        job.type.value,
        job.status.value,
        job.started_at.isoformat(),
        job.finished_at.isoformat() if job.finished_at else None,
        job.size_bytes,
        job.drive_file_id,
        job.drive_folder_id,
        int(job.encrypted),
        job.retention_kept,
        job.error,
        job.initiated_by,
        job.progress,
        json.dumps(job.files),
        job.summary_drive_file_id,
    )


def _row_to_job(row) -> BackupJob:
    return BackupJob(
        id=row[0],
        type=JobType(row[1]),
        status=JobStatus(row[2]),
        started_at=datetime.fromisoformat(row[3]),
        finished_at=datetime.fromisoformat(row[4]) if row[4] else None,
        size_bytes=row[5],
        drive_file_id=row[6],
        drive_folder_id=row[7],
        encrypted=bool(row[8]),
        retention_kept=row[9],
        error=row[10],
        initiated_by=row[11],
        progress=row[12],
        files=json.loads(row[13] or "[]"),
        summary_drive_file_id=row[14],
    )


async def insert_job(db: aiosqlite.Connection, job: BackupJob) -> None:
    """
    Record a new job.

    Args:
        db: SQLite database connection
        job: Job to insert (its id must be unique)
    """
    try:
        await db.execute(
            f"INSERT INTO backup_jobs ({_COLUMNS}) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (job.id, *_job_params(job)),
        )
        await db.commit()
    except Exception as e:
        raise LedgerError(f"Failed to insert job: {e}", details={"job_id": job.id})

    logger.debug("job_recorded", job_id=job.id, status=job.status.value)


async def update_job(db: aiosqlite.Connection, job: BackupJob) -> None:
    """
    Persist the current state of an existing job.

    Args:
        db: SQLite database connection
        job: Job to write back
    """
    try:
        cursor = await db.execute(
            """
            UPDATE backup_jobs
            SET type = ?, status = ?, started_at = ?, finished_at = ?,
                size_bytes = ?, drive_file_id = ?, drive_folder_id = ?,
                encrypted = ?, retention_kept = ?, error = ?, initiated_by = ?,
                progress = ?, files = ?, summary_drive_file_id = ?
            WHERE id = ?
            """,
            (*_job_params(job), job.id),
        )
        await db.commit()
    except Exception as e:
        raise LedgerError(f"Failed to update job: {e}", details={"job_id": job.id})

    if cursor.rowcount == 0:
        raise LedgerError("Job not found in ledger", details={"job_id": job.id})


async def get_job(db: aiosqlite.Connection, job_id: str) -> BackupJob | None:
    """
    Get a job by id.

    Returns:
        The job, or None if not found
    """
    async with db.execute(
        f"SELECT {_COLUMNS} FROM backup_jobs WHERE id = ?",
        (job_id,),
    ) as cursor:
        row = await cursor.fetchone()
        return _row_to_job(row) if row else None


async def get_latest_job(db: aiosqlite.Connection) -> BackupJob | None:
    """Get the most recently started job."""
    async with db.execute(
        f"SELECT {_COLUMNS} FROM backup_jobs ORDER BY started_at DESC, id DESC LIMIT 1"
    ) as cursor:
        row = await cursor.fetchone()
        return _row_to_job(row) if row else None


async def list_jobs(
    db: aiosqlite.Connection,
    limit: int = 50,
    offset: int = 0,
    status: JobStatus | None = None,
) -> List[BackupJob]:
    """
    List jobs newest first.

    Args:
        db: SQLite database connection
        limit: Maximum number of records to return
        offset: Number of records to skip
        status: Optional filter by status

    Returns:
        List of jobs ordered by started_at descending
    """
    query = f"SELECT {_COLUMNS} FROM backup_jobs"
    params: List = []

    if status:
        query += " WHERE status = ?"
        params.append(JobStatus(status).value)

    query += " ORDER BY started_at DESC, id DESC LIMIT ? OFFSET ?"
    params.extend([limit, offset])

    jobs: List[BackupJob] = []

    async with db.execute(query, params) as cursor:
        async for row in cursor:
            jobs.append(_row_to_job(row))

    return jobs


async def count_jobs_by_status(db: aiosqlite.Connection) -> Dict[str, int]:
    """Count jobs per status."""
    async with db.execute(
        "SELECT status, COUNT(*) FROM backup_jobs GROUP BY status"
    ) as cursor:
        return {row[0]: row[1] async for row in cursor}
