# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Remote storage interface shared by the pipeline and the retention collector.
"""

from pathlib import Path
from typing import List, Protocol, TypedDict


class RemoteFile(TypedDict):
    """A backup artifact as seen in the remote folder."""

    id: str
    name: str
    created_time: str  # RFC 3339, e.g. 2026-10-18T02:00:01.512Z
    size_bytes: int


class UploadResult(TypedDict):
    id: str
    size_bytes: int


class RemoteStorage(Protocol):
    """Folder/file operations the pipeline needs from an object store."""

    async def ensure_folder(self) -> str:
        ...

    async def upload(self, local_path: Path, remote_name: str, folder_id: str) -> UploadResult:
        ...

    async def list(self, folder_id: str) -> List[RemoteFile]:
        """Files in the folder, newest first, excluding trashed entries."""
        ...

    async def delete(self, file_id: str) -> None:
        ...

    async def download(self, file_id: str, dest_path: Path) -> None:
        ...
