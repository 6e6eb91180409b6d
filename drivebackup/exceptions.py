# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
drivebackup Exceptions - Custom exceptions for the drivebackup package.
"""


class DriveBackupError(Exception):
    """Base exception for all drivebackup errors."""

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(DriveBackupError):
    """Raised when configuration is invalid."""

    pass


class ValidationError(DriveBackupError):
    """Raised when a required input is missing. No job is created."""

    pass


class AlreadyRunningError(DriveBackupError):
    """Raised when a pipeline run is already active. No job is created."""

    pass


class ToolUnavailableError(DriveBackupError):
    """Raised when the datastore dump utility cannot be executed."""

    pass


class DumpFailedError(DriveBackupError):
    """Raised when the dump subprocess exits non-zero."""

    pass


class ArchiveFailedError(DriveBackupError):
    """Raised when the zip archive cannot be written or read."""

    pass


class EncryptionError(DriveBackupError):
    """Raised when encryption or decryption fails."""

    pass


class AuthRequiredError(DriveBackupError):
    """Raised when no usable remote storage credentials are available."""

    pass


class UploadFailedError(DriveBackupError):
    """Raised when uploading the backup artifact fails."""

    pass


class DownloadFailedError(DriveBackupError):
    """Raised when downloading a backup artifact fails."""

    pass


class StageTimeoutError(DriveBackupError):
    """Raised when a pipeline stage exceeds its deadline."""

    pass


class RestoreError(DriveBackupError):
    """Raised when a recovered backup cannot be prepared for restore."""

    pass


class InvalidTransitionError(DriveBackupError):
    """Raised on a job status change the state machine does not allow."""

    pass


class LedgerError(DriveBackupError):
    """Raised when job ledger operations fail."""

    pass
