# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Credential and state stores for the storage adapter.

The Drive adapter never touches the filesystem directly: OAuth tokens go
through a CredentialStore and small cached values (the backup folder id)
through a StateStore. File-backed implementations are used in production,
in-memory ones in tests.
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, Protocol

import structlog

logger = structlog.get_logger()


class CredentialStore(Protocol):
    def load(self) -> Dict[str, Any] | None:
        ...

    def save(self, credentials: Dict[str, Any]) -> None:
        ...


class StateStore(Protocol):
    def get(self, key: str) -> Any:
        ...

    def set(self, key: str, value: Any) -> None:
        ...


def _write_json_private(path: Path, payload: Dict[str, Any]) -> None:
    """Write JSON readable only by the owner, replacing the file atomically."""
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = path.with_suffix(path.suffix + ".tmp")
    fd = os.open(temp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2)
    os.replace(temp_path, path)


class FileCredentialStore:
    """OAuth token JSON persisted to a single file (mode 0600)."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> Dict[str, Any] | None:
        if not self.path.exists():
            return None
        try:
            return json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("token_file_unreadable", path=str(self.path), error=str(e))
            return None

    def save(self, credentials: Dict[str, Any]) -> None:
        _write_json_private(self.path, credentials)
        logger.info("tokens_saved", path=str(self.path))


class FileStateStore:
    """Small JSON key-value file (the remote folder id cache)."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            return json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("state_file_unreadable", path=str(self.path), error=str(e))
            return {}

    def get(self, key: str) -> Any:
        return self._read().get(key)

    def set(self, key: str, value: Any) -> None:
        data = self._read()
        data[key] = value
        try:
            _write_json_private(self.path, data)
        except OSError as e:
            logger.warning("state_file_write_failed", path=str(self.path), error=str(e))


class MemoryCredentialStore:
    def __init__(self, credentials: Dict[str, Any] | None = None):
        self.credentials = credentials

    def load(self) -> Dict[str, Any] | None:
        return self.credentials

    def save(self, credentials: Dict[str, Any]) -> None:
        self.credentials = credentials


class MemoryStateStore:
    def __init__(self, initial: Dict[str, Any] | None = None):
        self.data: Dict[str, Any] = dict(initial or {})

    def get(self, key: str) -> Any:
        return self.data.get(key)

    def set(self, key: str, value: Any) -> None:
        self.data[key] = value
