# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Backup summary manifest.

A small, human-readable JSON document uploaded next to a backup so an
operator can see what a remote artifact contains without downloading it.
"""

import json
import os
from datetime import datetime, UTC
from pathlib import Path
from typing import Any, Dict

import aiofiles


def count_files(directory: Path | None) -> int | None:
    """Number of regular files below a directory, or None if it is absent."""
    if directory is None or not Path(directory).is_dir():
        return None
    return sum(len(filenames) for _dirpath, _dirnames, filenames in os.walk(directory))


def app_version() -> str | None:
    from importlib.metadata import PackageNotFoundError, version

    try:
        return version("drivebackup")
    except PackageNotFoundError:
        return None


def build_summary(
    *,
    remote_name: str,
    size_bytes: int,
    encrypted: bool,
    uploads_dir: Path | None,
    job_id: str,
) -> Dict[str, Any]:
    return {
        "timestamp": datetime.now(UTC).isoformat(),
        "jobId": job_id,
        "backupFile": remote_name,
        "sizeBytes": size_bytes,
        "encrypted": encrypted,
        "uploads": {"files": count_files(uploads_dir)},
        "appVersion": app_version(),
    }


async def write_summary(path: Path, summary: Dict[str, Any]) -> Path:
    async with aiofiles.open(path, "w", encoding="utf-8") as f:
        await f.write(json.dumps(summary, indent=2))
    return path
