# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
drivebackup Archive Stage - Bundle and unpack backup zip archives.

A backup archive holds the datastore dump under its base name and,
when present, the asset directory tree under ``uploads/``.
"""

import os
import threading
import zipfile
from pathlib import Path

import structlog

from drivebackup.exceptions import ArchiveFailedError

logger = structlog.get_logger()

UPLOADS_ARCNAME = "uploads"
DUMP_SUFFIX = ".archive"


def bundle(
    primary_file: Path,
    optional_directory: Path | None,
    dest_zip_path: Path,
    cancel: threading.Event | None = None,
) -> int:
    """
    Create a maximally compressed zip of the dump and the asset directory.

    Args:
        primary_file: Dump file, stored under its base name (skipped if missing)
        optional_directory: Directory stored under uploads/ (skipped if absent)
        dest_zip_path: Output archive
        cancel: Checked between entries; once set the run stops

    Returns:
        Number of entries written

    Raises:
        ArchiveFailedError: If the archive cannot be written or the run
            was cancelled
    """
    primary_file = Path(primary_file)
    entries = 0

    try:
        with zipfile.ZipFile(
            dest_zip_path, "w", zipfile.ZIP_DEFLATED, compresslevel=9
        ) as zf:
            if primary_file.exists():
                _check_cancelled(cancel, dest_zip_path)
                zf.write(primary_file, arcname=primary_file.name)
                entries += 1

            if optional_directory is not None and Path(optional_directory).is_dir():
                root = Path(optional_directory)
                for dirpath, _dirnames, filenames in os.walk(root):
                    for filename in sorted(filenames):
                        path = Path(dirpath) / filename
                        arcname = Path(UPLOADS_ARCNAME) / path.relative_to(root)
                        _check_cancelled(cancel, dest_zip_path)
                        zf.write(path, arcname=arcname.as_posix())
                        entries += 1
    except ArchiveFailedError:
        Path(dest_zip_path).unlink(missing_ok=True)
        raise
    except (OSError, zipfile.BadZipFile, ValueError) as e:
        raise ArchiveFailedError(
            f"Failed to create archive: {e}",
            details={"dest_zip_path": str(dest_zip_path)},
        )

    logger.debug(
        "archive_created",
        dest_zip_path=str(dest_zip_path),
        entries=entries,
        size=Path(dest_zip_path).stat().st_size,
    )

    return entries


def _check_cancelled(cancel: threading.Event | None, dest_zip_path: Path) -> None:
    if cancel is not None and cancel.is_set():
        raise ArchiveFailedError(
            "Archive cancelled",
            details={"dest_zip_path": str(dest_zip_path)},
        )


def is_archive(path: Path) -> bool:
    """True if the file is a readable zip archive."""
    try:
        return zipfile.is_zipfile(path)
    except OSError:
        return False


def extract(zip_path: Path, dest_dir: Path) -> Path:
    """
    Extract a backup archive.

    Raises:
        ArchiveFailedError: If the archive is unreadable or contains
            unsafe member paths
    """
    dest_dir = Path(dest_dir)
    dest_dir.mkdir(parents=True, exist_ok=True)

    try:
        with zipfile.ZipFile(zip_path, "r") as zf:
            # Security: Check for path traversal
            for name in zf.namelist():
                if name.startswith("/") or ".." in Path(name).parts:
                    raise ArchiveFailedError(
                        f"Unsafe path in archive: {name}",
                        details={"zip_path": str(zip_path)},
                    )
            zf.extractall(dest_dir)
    except ArchiveFailedError:
        raise
    except (OSError, zipfile.BadZipFile) as e:
        raise ArchiveFailedError(
            f"Failed to extract archive: {e}",
            details={"zip_path": str(zip_path)},
        )

    return dest_dir


def find_dump_archive(directory: Path) -> Path | None:
    """Find the first ``*.archive`` dump file below a directory."""
    for path in sorted(Path(directory).rglob(f"*{DUMP_SUFFIX}")):
        if path.is_file():
            return path
    return None
