# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
drivebackup - MongoDB + uploads backups to Google Drive.

Dumps the database, bundles it with the uploaded-assets directory into a
zip, encrypts it with AES-256-CBC, uploads it to a Drive folder and keeps
only the newest N copies. Every run is recorded in a job ledger, and a
restore pipeline downloads, decrypts and unpacks a chosen backup.
"""

__version__ = "0.1.0"

# Configuration
from drivebackup.config import BackupConfig
from drivebackup.env import create_config_from_env

# Core orchestration
from drivebackup.core import (
    BackupOrchestrator,
    SingleFlightGuard,
    create_orchestrator,
    restore_command,
)

# Jobs
from drivebackup.jobs import BackupJob, JobStatus, JobType

# Scheduling
from drivebackup.scheduler import BackupScheduler

__all__ = [
    # Version
    "__version__",
    # Configuration
    "BackupConfig",
    "create_config_from_env",
    # Core orchestration
    "BackupOrchestrator",
    "SingleFlightGuard",
    "create_orchestrator",
    "restore_command",
    # Jobs
    "BackupJob",
    "JobStatus",
    "JobType",
    # Scheduling
    "BackupScheduler",
]
