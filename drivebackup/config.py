# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
drivebackup Configuration - Immutable configuration data structures.

All configuration is frozen (immutable) after creation to prevent
accidental modification while a pipeline run is in progress.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import List

# Minimum secret length (characters) before encryption is switched on
MIN_ENCRYPTION_KEY_LENGTH = 32

DEFAULT_CRON = "0 2 * * sun"  # Weekly, Sunday 02:00
DEFAULT_RETENTION_KEEP = 4


def _validate_cron(expression: str) -> bool:
    """Validate a 5-field crontab expression using APScheduler's parser."""
    from apscheduler.triggers.cron import CronTrigger

    if not expression or len(expression.split()) != 5:
        return False
    try:
        CronTrigger.from_crontab(expression)
    except ValueError:
        return False
    return True


@dataclass(frozen=True)
class BackupConfig:
    """
    Immutable configuration for the backup and restore pipeline.

    Secrets (encryption key, OAuth client secret) are excluded from repr
    so they never end up in logs.
    """

    # MongoDB connection string handed to mongodump
    database_uri: str = "mongodb://localhost:27017/tourdb"

    # Dump/restore utility executables (name on PATH or full path)
    dump_tool_path: str = "mongodump"
    restore_tool_path: str = "mongorestore"

    # Working directory for dump/archive/encrypted files
    temp_dir: Path = field(default_factory=lambda: Path("./tmp/backups"))

    # Asset directory bundled under uploads/ (skipped if missing)
    uploads_dir: Path | None = field(default_factory=lambda: Path("./uploads"))

    # Symmetric key; encryption only runs when >= MIN_ENCRYPTION_KEY_LENGTH chars
    encryption_key: str | None = field(default=None, repr=False)

    # Treat a short/missing key as a configuration error instead of skipping
    require_encryption: bool = False

    # Number of remote backups to keep
    retention_keep: int = DEFAULT_RETENTION_KEEP

    # Crontab expression for scheduled runs
    cron: str = DEFAULT_CRON

    # Remote folder override; otherwise cached or created on first upload
    folder_id: str | None = None
    folder_name: str = "Tour-MERN-Backups"

    # Remote artifact name prefix: <prefix>-backup-<timestamp>.zip[.enc]
    remote_prefix: str = "tour-mern"

    # Job ledger database
    ledger_path: Path = field(default_factory=lambda: Path("./tmp/backup_jobs.db"))

    # OAuth token file and local state cache (remote folder id)
    token_path: Path = field(default_factory=lambda: Path("./.gdrive_token.json"))
    state_path: Path = field(default_factory=lambda: Path("./.gdrive_config.json"))

    # Google OAuth2 client
    oauth_client_id: str | None = None
    oauth_client_secret: str | None = field(default=None, repr=False)
    oauth_redirect_uri: str | None = None

    # Deadline per pipeline stage; None disables the deadline
    stage_timeout_seconds: float | None = 3600.0

    # Upload a JSON summary manifest next to each backup
    upload_summary: bool = False

    def __post_init__(self) -> None:
        """Validate configuration after creation."""
        errors: List[str] = []

        if not self.database_uri:
            errors.append("database_uri must not be empty")

        if not self.dump_tool_path:
            errors.append("dump_tool_path must not be empty")

        if self.retention_keep < 0:
            errors.append(f"retention_keep must be >= 0, got {self.retention_keep}")

        if not _validate_cron(self.cron):
            errors.append(f"Invalid cron expression: {self.cron!r}")

        if self.stage_timeout_seconds is not None and self.stage_timeout_seconds <= 0:
            errors.append(
                f"stage_timeout_seconds must be > 0, got {self.stage_timeout_seconds}"
            )

        if not self.remote_prefix:
            errors.append("remote_prefix must not be empty")

        if self.require_encryption and not self.encryption_enabled:
            errors.append(
                f"require_encryption is set but the encryption key is shorter than "
                f"{MIN_ENCRYPTION_KEY_LENGTH} characters"
            )

        if errors:
            from drivebackup.exceptions import ConfigurationError

            raise ConfigurationError(
                "Configuration validation failed",
                details={"errors": errors},
            )

    @property
    def encryption_enabled(self) -> bool:
        """True when the configured key is long enough to be used."""
        from drivebackup.stages.crypto import is_key_usable

        return is_key_usable(self.encryption_key)

    @property
    def oauth_configured(self) -> bool:
        return bool(self.oauth_client_id and self.oauth_client_secret and self.oauth_redirect_uri)

    def with_updates(self, **kwargs) -> "BackupConfig":
        """
        Create a new config with updated values.

        Since the config is frozen, this creates a new instance.
        """
        from dataclasses import asdict

        current = asdict(self)
        current.update(kwargs)
        return BackupConfig(**current)
