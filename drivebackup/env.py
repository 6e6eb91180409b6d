# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Environment-based configuration helpers.

create_config_from_env() reads the environment variables the backup
pipeline has always used (MONGO_URI, BACKUP_ENCRYPTION_KEY, BACKUP_CRON, ...)
and builds a validated BackupConfig from them.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Mapping

from drivebackup.config import DEFAULT_CRON, DEFAULT_RETENTION_KEEP, BackupConfig
from drivebackup.errors import explain_invalid_cron, explain_invalid_integer_env
from drivebackup.exceptions import ConfigurationError

_TRUTHY = {"1", "true", "yes", "on"}


def _parse_int(name: str, value: str | None, default: int) -> int:
    if value is None or not value.strip():
        return default
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(explain_invalid_integer_env(name, value)) from exc
    if number < 0:
        raise ConfigurationError(explain_invalid_integer_env(name, value))
    return number


def _parse_bool(value: str | None) -> bool:
    return bool(value) and value.strip().lower() in _TRUTHY


def _first(env: Mapping[str, str], *names: str) -> str | None:
    """Return the first non-empty value among several variable names."""
    for name in names:
        value = env.get(name)
        if value and value.strip():
            return value.strip()
    return None


def create_config_from_env(env: Mapping[str, str] | None = None) -> BackupConfig:
    """
    Create a BackupConfig from environment variables.

    Optional environment variables:
        - MONGO_URI: MongoDB connection string
        - MONGODUMP_PATH / MONGORESTORE_PATH: Tool executables
        - BACKUP_TEMP_DIR: Temporary backups directory (default: ./tmp/backups)
        - BACKUP_UPLOADS_DIR: Asset directory to bundle (default: ./uploads)
        - BACKUP_ENCRYPTION_KEY: Key, at least 32 characters to enable encryption
        - BACKUP_REQUIRE_ENCRYPTION: Fail configuration if the key is unusable
        - BACKUP_RETENTION: Number of remote backups to keep (default: 4)
        - BACKUP_CRON: Crontab expression (default: '0 2 * * sun')
        - BACKUP_FOLDER_ID / BACKUP_FOLDER_NAME: Remote folder override / name
        - BACKUP_REMOTE_PREFIX: Remote artifact name prefix (default: tour-mern)
        - BACKUP_LEDGER_PATH, BACKUP_TOKEN_PATH, BACKUP_STATE_PATH: Local files
        - BACKUP_STAGE_TIMEOUT: Seconds per stage, 0 disables (default: 3600)
        - BACKUP_UPLOAD_SUMMARY: Upload a JSON summary beside each backup
        - GOOGLE_DRIVE_CLIENT_ID / _CLIENT_SECRET / _REDIRECT_URI, falling back
          to GOOGLE_CLIENT_ID / GOOGLE_CLIENT_SECRET / GOOGLE_REDIRECT_URI

    Args:
        env: Mapping to read instead of os.environ (useful in tests)

    Returns:
        Validated BackupConfig
    """
    env = os.environ if env is None else env

    cron = _first(env, "BACKUP_CRON") or DEFAULT_CRON
    timeout = _parse_int("BACKUP_STAGE_TIMEOUT", env.get("BACKUP_STAGE_TIMEOUT"), 3600)
    uploads_dir = _first(env, "BACKUP_UPLOADS_DIR") or "./uploads"

    try:
        return BackupConfig(
            database_uri=_first(env, "MONGO_URI") or "mongodb://localhost:27017/tourdb",
            dump_tool_path=_first(env, "MONGODUMP_PATH") or "mongodump",
            restore_tool_path=_first(env, "MONGORESTORE_PATH") or "mongorestore",
            temp_dir=Path(_first(env, "BACKUP_TEMP_DIR") or "./tmp/backups"),
            uploads_dir=Path(uploads_dir),
            encryption_key=env.get("BACKUP_ENCRYPTION_KEY") or None,
            require_encryption=_parse_bool(env.get("BACKUP_REQUIRE_ENCRYPTION")),
            retention_keep=_parse_int(
                "BACKUP_RETENTION", env.get("BACKUP_RETENTION"), DEFAULT_RETENTION_KEEP
            ),
            cron=cron,
            folder_id=_first(env, "BACKUP_FOLDER_ID"),
            folder_name=_first(env, "BACKUP_FOLDER_NAME") or "Tour-MERN-Backups",
            remote_prefix=_first(env, "BACKUP_REMOTE_PREFIX") or "tour-mern",
            ledger_path=Path(_first(env, "BACKUP_LEDGER_PATH") or "./tmp/backup_jobs.db"),
            token_path=Path(_first(env, "BACKUP_TOKEN_PATH") or "./.gdrive_token.json"),
            state_path=Path(_first(env, "BACKUP_STATE_PATH") or "./.gdrive_config.json"),
            oauth_client_id=_first(env, "GOOGLE_DRIVE_CLIENT_ID", "GOOGLE_CLIENT_ID"),
            oauth_client_secret=_first(
                env, "GOOGLE_DRIVE_CLIENT_SECRET", "GOOGLE_CLIENT_SECRET"
            ),
            oauth_redirect_uri=_first(
                env,
                "GOOGLE_DRIVE_REDIRECT_URI",
                "GOOGLE_REDIRECT_URI",
                "GOOGLE_CALLBACK_URL",
            ),
            stage_timeout_seconds=float(timeout) if timeout else None,
            upload_summary=_parse_bool(env.get("BACKUP_UPLOAD_SUMMARY")),
        )
    except ConfigurationError as exc:
        errors = exc.details.get("errors", [])
        if any(e.startswith("Invalid cron expression") for e in errors):
            raise ConfigurationError(explain_invalid_cron(cron), details=exc.details) from exc
        raise
