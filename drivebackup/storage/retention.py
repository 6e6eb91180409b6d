# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
drivebackup Retention Collector - Keep only the newest remote backups.
"""

import structlog

from drivebackup.config import DEFAULT_RETENTION_KEEP
from drivebackup.storage.base import RemoteStorage

logger = structlog.get_logger()


async def enforce_retention(
    storage: RemoteStorage,
    folder_id: str,
    keep: int | None = None,
) -> int:
    """
    Delete every file in the folder beyond the ``keep`` newest ones.

    Files are deleted one at a time. A failed delete is logged and
    skipped so the rest of the pass still runs; the failed file stays
    and is counted as retained.

    Args:
        storage: Remote storage adapter
        folder_id: Backup folder
        keep: Number of newest files to keep (default: 4)

    Returns:
        Number of files remaining in the folder
    """
    keep = DEFAULT_RETENTION_KEEP if keep is None else keep
    if keep < 0:
        raise ValueError(f"keep must be >= 0, got {keep}")

    files = await storage.list(folder_id)
    if len(files) <= keep:
        logger.info("retention_nothing_to_delete", folder_id=folder_id, total=len(files), keep=keep)
        return len(files)

    deleted = 0
    for remote_file in files[keep:]:
        try:
            await storage.delete(remote_file["id"])
            deleted += 1
            logger.info(
                "retention_file_deleted",
                file_id=remote_file["id"],
                name=remote_file["name"],
                created_time=remote_file["created_time"],
            )
        except Exception as e:
            logger.warning(
                "retention_delete_failed",
                file_id=remote_file["id"],
                name=remote_file["name"],
                error=str(e),
            )

    kept = len(files) - deleted
    logger.info("retention_complete", folder_id=folder_id, deleted=deleted, kept=kept, keep=keep)
    return kept
