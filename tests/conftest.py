# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Test fixtures for drivebackup tests.

Provides a temporary workspace, a test configuration, a fake dumper and
an in-memory stand-in for the Drive folder.
"""

import asyncio
import tempfile
from datetime import datetime, timedelta, UTC
from pathlib import Path
from typing import Dict, Generator, List

import pytest
import pytest_asyncio

from drivebackup.config import BackupConfig
from drivebackup.core import BackupOrchestrator
from drivebackup.errors import explain_missing_dump_tool
from drivebackup.exceptions import ToolUnavailableError
from drivebackup.storage.base import RemoteFile, UploadResult

TEST_KEY = "k" * 32
DUMP_BYTES = b"D" * 40


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def uploads_dir(temp_dir: Path) -> Path:
    """Asset directory with ten small files."""
    uploads = temp_dir / "uploads"
    uploads.mkdir()
    for i in range(10):
        (uploads / f"asset-{i}.jpg").write_bytes(bytes([i]) * 128)
    return uploads


@pytest.fixture
def config(temp_dir: Path, uploads_dir: Path) -> BackupConfig:
    return BackupConfig(
        database_uri="mongodb://localhost:27017/tourdb",
        temp_dir=temp_dir / "tmp" / "backups",
        uploads_dir=uploads_dir,
        encryption_key=TEST_KEY,
        ledger_path=temp_dir / "backup_jobs.db",
        token_path=temp_dir / ".gdrive_token.json",
        state_path=temp_dir / ".gdrive_config.json",
        stage_timeout_seconds=10.0,
    )


class FakeDumper:
    """
    Dumper that writes canned bytes instead of spawning mongodump.

    Args:
        content: Bytes written as the dump
        available: When False, probe() fails like a missing executable
        delay: Seconds to sleep inside dump()
        gate: Event dump() waits on before writing
    """

    def __init__(
        self,
        content: bytes = DUMP_BYTES,
        available: bool = True,
        delay: float = 0.0,
        gate: asyncio.Event | None = None,
    ):
        self.content = content
        self.available = available
        self.delay = delay
        self.gate = gate
        self.calls: List[Path] = []

    async def probe(self) -> None:
        if not self.available:
            raise ToolUnavailableError(explain_missing_dump_tool("mongodump"))

    async def dump(self, database_uri: str, dest_path: Path) -> None:
        self.calls.append(Path(dest_path))
        if self.gate is not None:
            await self.gate.wait()
        if self.delay:
            await asyncio.sleep(self.delay)
        Path(dest_path).write_bytes(self.content)


class InMemoryStorage:
    """RemoteStorage keeping files in a dict; created times increase per upload."""

    FOLDER_ID = "folder-test"

    def __init__(self):
        self.files: Dict[str, dict] = {}
        self.fail_upload: Exception | None = None
        self.fail_download: Exception | None = None
        self.fail_delete: set = set()
        self.deleted: List[str] = []
        self._counter = 0
        self._base_time = datetime(2026, 1, 1, tzinfo=UTC)

    def seed(self, name: str, data: bytes = b"old") -> str:
        """Add a file as if uploaded earlier."""
        return self._store(name, data)

    def _store(self, name: str, data: bytes) -> str:
        self._counter += 1
        file_id = f"file-{self._counter}"
        created = self._base_time + timedelta(seconds=self._counter)
        self.files[file_id] = {
            "name": name,
            "data": data,
            "created_time": created.strftime("%Y-%m-%dT%H:%M:%S.000Z"),
        }
        return file_id

    def by_name(self, suffix: str) -> List[dict]:
        return [f for f in self.files.values() if f["name"].endswith(suffix)]

    async def ensure_folder(self) -> str:
        return self.FOLDER_ID

    async def upload(self, local_path: Path, remote_name: str, folder_id: str) -> UploadResult:
        if self.fail_upload is not None:
            raise self.fail_upload
        data = Path(local_path).read_bytes()
        file_id = self._store(remote_name, data)
        return UploadResult(id=file_id, size_bytes=len(data))

    async def list(self, folder_id: str) -> List[RemoteFile]:
        files = [
            RemoteFile(
                id=file_id,
                name=f["name"],
                created_time=f["created_time"],
                size_bytes=len(f["data"]),
            )
            for file_id, f in self.files.items()
        ]
        return sorted(files, key=lambda f: f["created_time"], reverse=True)

    async def delete(self, file_id: str) -> None:
        if file_id in self.fail_delete:
            raise RuntimeError(f"cannot delete {file_id}")
        del self.files[file_id]
        self.deleted.append(file_id)

    async def download(self, file_id: str, dest_path: Path) -> None:
        if self.fail_download is not None:
            raise self.fail_download
        Path(dest_path).write_bytes(self.files[file_id]["data"])


class RecordingNotifier:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.events: List[tuple] = []

    async def notify(self, job, message) -> None:
        self.events.append((job.id, job.status, message))
        if self.fail:
            raise RuntimeError("smtp down")


@pytest.fixture
def dumper() -> FakeDumper:
    return FakeDumper()


@pytest.fixture
def storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest_asyncio.fixture
async def orchestrator(
    config: BackupConfig,
    storage: InMemoryStorage,
    dumper: FakeDumper,
    notifier: RecordingNotifier,
) -> BackupOrchestrator:
    orchestrator = BackupOrchestrator(config, storage, dumper=dumper, notifier=notifier)
    await orchestrator.initialize()
    return orchestrator
