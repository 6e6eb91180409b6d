# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
drivebackup Jobs - The BackupJob record and its state machine.

A BackupJob is the audit record of one pipeline run (backup or restore).
It is created at the start of a run, mutated in place as stages complete,
and never deleted.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime, UTC
from enum import Enum
from typing import Any, Dict, List, TypedDict

from drivebackup.exceptions import InvalidTransitionError


class JobType(str, Enum):
    """What triggered the run."""

    MANUAL = "manual"
    SCHEDULED = "scheduled"


class JobStatus(str, Enum):
    """Lifecycle status of a run."""

    PENDING = "pending"
    RUNNING = "running"
    RESTORING = "restoring"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED})
ACTIVE_STATUSES = frozenset({JobStatus.RUNNING, JobStatus.RESTORING})

_TRANSITIONS: Dict[JobStatus, frozenset] = {
    JobStatus.PENDING: frozenset({JobStatus.RUNNING, JobStatus.RESTORING}),
    JobStatus.RUNNING: TERMINAL_STATUSES,
    JobStatus.RESTORING: TERMINAL_STATUSES,
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
}


class JobFile(TypedDict):
    """An artifact produced or recovered by a run."""

    name: str
    path: str | None
    size: int


def new_job_id() -> str:
    from ulid import ULID

    return str(ULID())


def utc_now() -> datetime:
    return datetime.now(UTC)


def file_timestamp(moment: datetime | None = None) -> str:
    """
    ISO 8601 timestamp safe for file names.

    ``2026-10-18T02:00:00.123Z`` becomes ``2026-10-18T02-00-00-123Z``.
    """
    moment = moment or utc_now()
    iso = moment.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"
    return iso.replace(":", "-").replace(".", "-")


@dataclass
class BackupJob:
    """Persisted ledger entry for one pipeline run."""

    id: str
    type: JobType
    status: JobStatus = JobStatus.PENDING
    started_at: datetime = field(default_factory=utc_now)
    finished_at: datetime | None = None
    size_bytes: int = 0
    drive_file_id: str | None = None
    drive_folder_id: str | None = None
    encrypted: bool = False
    retention_kept: int = 0
    error: str | None = None
    initiated_by: str | None = None
    progress: int = 0
    files: List[JobFile] = field(default_factory=list)
    summary_drive_file_id: str | None = None

    @classmethod
    def create(cls, job_type: JobType, initiated_by: str | None = None) -> "BackupJob":
        """Create a new job in ``pending`` state."""
        return cls(id=new_job_id(), type=JobType(job_type), initiated_by=initiated_by)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def transition(self, status: JobStatus) -> None:
        """
        Move the job to a new status.

        Transitions are one-directional; a terminal job never changes
        status again. Entering a terminal state stamps ``finished_at``.

        Raises:
            InvalidTransitionError: If the state machine forbids the move
        """
        status = JobStatus(status)
        if status not in _TRANSITIONS[self.status]:
            raise InvalidTransitionError(
                f"Cannot move job from {self.status.value} to {status.value}",
                details={"job_id": self.id},
            )
        self.status = status
        if status in TERMINAL_STATUSES:
            self.finished_at = utc_now()

    def complete(self) -> None:
        self.transition(JobStatus.COMPLETED)
        self.progress = 100

    def fail(self, error: str) -> None:
        self.transition(JobStatus.FAILED)
        self.error = error

    def add_file(self, name: str, path: str | None, size: int) -> None:
        self.files.append(JobFile(name=name, path=path, size=size))

    def to_dict(self) -> Dict[str, Any]:
        """JSON-friendly representation (enums as values, ISO timestamps)."""
        data = asdict(self)
        data["type"] = self.type.value
        data["status"] = self.status.value
        data["started_at"] = self.started_at.isoformat()
        data["finished_at"] = self.finished_at.isoformat() if self.finished_at else None
        return data
