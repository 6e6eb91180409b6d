# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Remote Storage - Google Drive adapter, credential stores and retention.
"""

from drivebackup.storage.base import (
    RemoteFile,
    RemoteStorage,
    UploadResult,
)

from drivebackup.storage.credentials import (
    CredentialStore,
    FileCredentialStore,
    FileStateStore,
    MemoryCredentialStore,
    MemoryStateStore,
    StateStore,
)

from drivebackup.storage.drive import DriveStorage

from drivebackup.storage.retention import enforce_retention

__all__ = [
    # Interface
    "RemoteFile",
    "RemoteStorage",
    "UploadResult",
    # Stores
    "CredentialStore",
    "FileCredentialStore",
    "FileStateStore",
    "MemoryCredentialStore",
    "MemoryStateStore",
    "StateStore",
    # Adapter
    "DriveStorage",
    # Retention
    "enforce_retention",
]
