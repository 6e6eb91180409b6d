# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Human-friendly error message helpers for drivebackup.

These helpers centralize wording for common configuration and environment
errors so that all modules present consistent, actionable messages.
"""


def explain_missing_dump_tool(tool: str) -> str:
    """
    Explain that the mongodump executable could not be run.
    """

    return (
        f"{tool} not found. Please install MongoDB Database Tools and ensure "
        "mongodump is in your PATH, or set MONGODUMP_PATH to its full path. "
        "On Windows you can install via Chocolatey: `choco install mongodb-database-tools -y`, "
        "or download from https://www.mongodb.com/try/download/database-tools. "
        "After installing, restart your shell and try again."
    )


def explain_missing_oauth_env() -> str:
    """
    Explain that the Google OAuth client settings are missing.
    """

    return (
        "Google OAuth credentials are not configured. "
        "Set GOOGLE_DRIVE_CLIENT_ID, GOOGLE_DRIVE_CLIENT_SECRET and "
        "GOOGLE_DRIVE_REDIRECT_URI (or the GOOGLE_CLIENT_* fallbacks)."
    )


def explain_missing_tokens() -> str:
    """
    Explain that Google Drive has not been authorized yet.
    """

    return (
        "No Google Drive tokens found; authorize first. "
        "Run `drivebackup auth-url`, approve access in the browser, then "
        "`drivebackup auth-code <code>`."
    )


def explain_invalid_integer_env(name: str, value: str | None) -> str:
    """
    Explain that an integer environment variable is invalid.
    """

    return (
        f"Invalid {name} value: {value!r}. "
        "It must be a non-negative integer."
    )


def explain_invalid_cron(value: str | None) -> str:
    """
    Explain that BACKUP_CRON is not a valid crontab expression.
    """

    return (
        f"Invalid BACKUP_CRON value: {value!r}. "
        "Expected a 5-field crontab expression such as '0 2 * * sun'."
    )


def explain_short_encryption_key(length: int, minimum: int) -> str:
    """
    Explain that the encryption key is too short to be used.
    """

    return (
        f"BACKUP_ENCRYPTION_KEY is {length} characters long; at least {minimum} "
        "are required. Backups will be uploaded unencrypted unless a longer key is set."
    )
