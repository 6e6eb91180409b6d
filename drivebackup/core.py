# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
drivebackup Core - Backup and restore pipeline orchestration.

A backup run goes dump -> archive -> encrypt -> upload -> retention and
a restore run goes download -> decrypt -> extract. Each run is recorded
as one BackupJob in the ledger. Only one run may be active per
orchestrator; a second request is rejected, never queued.
"""

import asyncio
import shutil
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Awaitable, Callable, List
from urllib.parse import urlsplit, urlunsplit

import aiosqlite
import structlog

from drivebackup.config import MIN_ENCRYPTION_KEY_LENGTH, BackupConfig
from drivebackup.errors import explain_short_encryption_key
from drivebackup.exceptions import (
    AlreadyRunningError,
    DownloadFailedError,
    DriveBackupError,
    EncryptionError,
    RestoreError,
    StageTimeoutError,
    UploadFailedError,
    ValidationError,
)
from drivebackup.jobs import BackupJob, JobStatus, JobType, file_timestamp
from drivebackup.ledger import get_latest_job, init_ledger_db, insert_job, list_jobs, update_job
from drivebackup.notify import LogNotifier, Notifier, build_notification
from drivebackup.stages.archive import bundle, extract, find_dump_archive, is_archive
from drivebackup.stages.crypto import decrypt_file, encrypt_file
from drivebackup.stages.dump import Dumper, MongoDumper
from drivebackup.storage.base import RemoteStorage
from drivebackup.storage.retention import enforce_retention
from drivebackup.summary import build_summary, write_summary
from drivebackup.workers import run_in_thread

logger = structlog.get_logger()

# Thread pool for zip and AES work
_executor = ThreadPoolExecutor(max_workers=4)


class SingleFlightGuard:
    """
    Process-local "one active run" lock keyed by job id.

    try_acquire() checks and sets without yielding to the event loop, so
    two coroutines can never both acquire it.
    """

    def __init__(self) -> None:
        self._active_job_id: str | None = None

    @property
    def active_job_id(self) -> str | None:
        return self._active_job_id

    def try_acquire(self, job_id: str) -> bool:
        if self._active_job_id is not None:
            return False
        self._active_job_id = job_id
        return True

    def release(self, job_id: str) -> None:
        if self._active_job_id == job_id:
            self._active_job_id = None


def redact_uri(uri: str) -> str:
    """Hide the password in a connection string."""
    parts = urlsplit(uri)
    if not parts.password:
        return uri
    netloc = parts.netloc.replace(f":{parts.password}@", ":***@", 1)
    return urlunsplit(parts._replace(netloc=netloc))


def source_database(uri: str) -> str:
    """Database name from the path of a MongoDB URI (default: tourdb)."""
    return urlsplit(uri).path.lstrip("/").split("?")[0] or "tourdb"


def restore_command(config: BackupConfig, dump_path: Path, target_db: str | None = None) -> List[str]:
    """
    mongorestore invocation an operator runs to load a recovered dump.

    Collections are mapped from the source database into ``target_db``
    (default: ``<source>_restore``) so the live database is untouched.
    """
    source_db = source_database(config.database_uri)
    target_db = target_db or f"{source_db}_restore"
    parts = urlsplit(config.database_uri)
    server_uri = urlunsplit((parts.scheme, parts.netloc, "", parts.query, ""))
    return [
        config.restore_tool_path,
        f"--archive={dump_path}",
        "--gzip",
        f"--nsFrom={source_db}.*",
        f"--nsTo={target_db}.*",
        f"--uri={server_uri}",
    ]


class BackupOrchestrator:
    """
    Drives backup and restore runs and keeps the job ledger up to date.

    Args:
        config: Pipeline configuration
        storage: Remote storage adapter
        dumper: Datastore dumper (default: MongoDumper for config.dump_tool_path)
        guard: Single-flight guard; pass a shared one to serialize several
            orchestrators, or leave unset for an independent instance
        notifier: Receives one event per finished job (default: LogNotifier)
    """

    def __init__(
        self,
        config: BackupConfig,
        storage: RemoteStorage,
        dumper: Dumper | None = None,
        guard: SingleFlightGuard | None = None,
        notifier: Notifier | None = None,
    ):
        self.config = config
        self.storage = storage
        self.dumper = dumper or MongoDumper(config.dump_tool_path)
        self.guard = guard or SingleFlightGuard()
        self.notifier = notifier or LogNotifier()
        self._current: BackupJob | None = None

    async def initialize(self) -> None:
        """Create the temporary directory and the ledger schema."""
        self.config.temp_dir.mkdir(parents=True, exist_ok=True)
        await init_ledger_db(self.config.ledger_path)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_status(self) -> BackupJob | None:
        """The active job, or the most recent one from the ledger."""
        if self._current is not None:
            return self._current
        async with aiosqlite.connect(self.config.ledger_path) as db:
            return await get_latest_job(db)

    async def list_history(self, limit: int = 50, offset: int = 0) -> List[BackupJob]:
        async with aiosqlite.connect(self.config.ledger_path) as db:
            return await list_jobs(db, limit, offset)

    async def download_file(self, file_id: str, dest_path: Path) -> Path:
        """Download a remote artifact as-is, without creating a job."""
        if not file_id:
            raise ValidationError("fileId is required")
        await self.storage.download(file_id, Path(dest_path))
        return Path(dest_path)

    # ------------------------------------------------------------------
    # Backup
    # ------------------------------------------------------------------

    async def start_backup(
        self,
        job_type: JobType = JobType.MANUAL,
        initiated_by: str | None = None,
        *,
        raise_on_failure: bool = False,
    ) -> BackupJob:
        """
        Run one complete backup.

        Args:
            job_type: manual or scheduled
            initiated_by: Caller identity (None for scheduled runs)
            raise_on_failure: Re-raise the stage exception after the
                failed job has been recorded

        Returns:
            The finished job; ``status`` is completed or failed

        Raises:
            AlreadyRunningError: If a run is active (no job is created)
        """
        job = BackupJob.create(job_type, initiated_by)
        await self._begin(job, JobStatus.RUNNING, "Another backup is already running")

        timestamp = file_timestamp(job.started_at)
        temp_dir = self.config.temp_dir
        dump_file = temp_dir / f"dump-{timestamp}.archive"
        archive_file = temp_dir / f"backup-{timestamp}.zip"
        encrypted_file = temp_dir / f"backup-{timestamp}.zip.enc"
        summary_file = temp_dir / f"backup-summary-{timestamp}.json"

        logger.info(
            "backup_started",
            job_id=job.id,
            type=job.type.value,
            initiated_by=initiated_by,
        )

        failure: BaseException | None = None
        try:
            await self._run_backup(job, timestamp, dump_file, archive_file, encrypted_file, summary_file)
            job.complete()
            logger.info(
                "backup_completed",
                job_id=job.id,
                drive_file_id=job.drive_file_id,
                size=job.size_bytes,
                encrypted=job.encrypted,
                retention_kept=job.retention_kept,
            )
        except Exception as e:
            failure = e
            if not job.is_terminal:
                job.fail(str(e))
            logger.error("backup_failed", job_id=job.id, error=str(e), error_type=type(e).__name__)
        finally:
            self._remove_files(dump_file, archive_file, encrypted_file, summary_file)
            await self._finish(job)

        await self._notify(job, "Backup")

        if failure is not None and raise_on_failure:
            raise failure
        return job

    async def _run_backup(
        self,
        job: BackupJob,
        timestamp: str,
        dump_file: Path,
        archive_file: Path,
        encrypted_file: Path,
        summary_file: Path,
    ) -> None:
        # 1) Dump (probe first so a missing tool fails before anything is written)
        await self._progress(job, 10)
        await self._stage("dump", self._dump(dump_file))

        # 2) Archive dump + uploads
        await self._progress(job, 40)
        uploads_dir = self.config.uploads_dir
        await self._stage(
            "archive",
            self._in_thread(
                bundle,
                dump_file,
                uploads_dir if uploads_dir is not None and uploads_dir.is_dir() else None,
                archive_file,
                cancellable=True,
            ),
        )

        # 3) Encrypt if the key is usable
        await self._progress(job, 65)
        upload_path = archive_file
        if self.config.encryption_enabled:
            await self._stage(
                "encrypt",
                self._in_thread(
                    encrypt_file,
                    archive_file,
                    encrypted_file,
                    self.config.encryption_key,
                    cancellable=True,
                ),
            )
            upload_path = encrypted_file
            job.encrypted = True
        else:
            job.encrypted = False
            if self.config.encryption_key:
                logger.warning(
                    "encryption_skipped",
                    job_id=job.id,
                    reason=explain_short_encryption_key(
                        len(self.config.encryption_key), MIN_ENCRYPTION_KEY_LENGTH
                    ),
                )

        # 4) Upload
        await self._progress(job, 80)
        remote_name = f"{self.config.remote_prefix}-backup-{timestamp}" + (
            ".zip.enc" if job.encrypted else ".zip"
        )
        folder_id = await self._stage("upload", self._upload(job, upload_path, remote_name))

        if self.config.upload_summary:
            await self._upload_summary(job, folder_id, remote_name, timestamp, summary_file)

        # 5) Retention
        await self._progress(job, 90)
        job.retention_kept = await self._stage(
            "retention",
            enforce_retention(self.storage, folder_id, self.config.retention_keep),
        )

    async def _dump(self, dump_file: Path) -> None:
        await self.dumper.probe()
        await self.dumper.dump(self.config.database_uri, dump_file)

    async def _upload(self, job: BackupJob, upload_path: Path, remote_name: str) -> str:
        try:
            folder_id = await self.storage.ensure_folder()
            result = await self.storage.upload(upload_path, remote_name, folder_id)
        except DriveBackupError:
            raise
        except Exception as e:
            raise UploadFailedError(
                f"Upload failed: {e}", details={"remote_name": remote_name}
            ) from e

        job.size_bytes = result["size_bytes"]
        job.drive_file_id = result["id"]
        job.drive_folder_id = folder_id
        job.add_file(remote_name, None, result["size_bytes"])
        await self._save(job)
        return folder_id

    async def _upload_summary(
        self,
        job: BackupJob,
        folder_id: str,
        remote_name: str,
        timestamp: str,
        summary_file: Path,
    ) -> None:
        """Upload the JSON manifest; failures never fail the backup."""
        summary_name = f"backup-summary-{timestamp}.json"
        try:
            summary = build_summary(
                remote_name=remote_name,
                size_bytes=job.size_bytes,
                encrypted=job.encrypted,
                uploads_dir=self.config.uploads_dir,
                job_id=job.id,
            )
            await write_summary(summary_file, summary)
            result = await self.storage.upload(summary_file, summary_name, folder_id)
            job.summary_drive_file_id = result["id"]
            job.add_file(summary_name, None, result["size_bytes"])
        except Exception as e:
            logger.warning("summary_upload_failed", job_id=job.id, error=str(e))

    # ------------------------------------------------------------------
    # Restore
    # ------------------------------------------------------------------

    async def restore_backup(
        self,
        file_id: str,
        target_db: str | None = None,
        *,
        initiated_by: str | None = None,
        raise_on_failure: bool = False,
    ) -> BackupJob:
        """
        Download, decrypt and unpack a remote backup for an operator.

        The recovered zip and the extracted dump stay on disk (their paths
        are listed in ``job.files``); loading them into a database is left
        to the operator, using the logged mongorestore command.

        Args:
            file_id: Remote artifact id
            target_db: Database the operator intends to restore into; only
                used to build the suggested command
            initiated_by: Caller identity
            raise_on_failure: Re-raise the stage exception after recording it

        Raises:
            ValidationError: If file_id is empty (no job is created)
            AlreadyRunningError: If a run is active (no job is created)
        """
        if not file_id or not str(file_id).strip():
            raise ValidationError("fileId is required")

        job = BackupJob.create(JobType.MANUAL, initiated_by)
        await self._begin(job, JobStatus.RESTORING, "Another backup or restore is already running")

        timestamp = file_timestamp(job.started_at)
        download_dir = self.config.temp_dir / f"download-{timestamp}"
        download_file = download_dir / f"backup-{timestamp}.zip"

        logger.info("restore_started", job_id=job.id, file_id=file_id, target_db=target_db)

        failure: BaseException | None = None
        try:
            download_dir.mkdir(parents=True, exist_ok=True)

            await self._progress(job, 10)
            await self._stage("download", self._download(file_id, download_file))

            await self._progress(job, 30)
            working_zip = await self._stage("decrypt", self._recover_archive(job, download_file))

            await self._progress(job, 50)
            extract_dir = download_dir / "extracted"
            await self._stage("extract", self._in_thread(extract, working_zip, extract_dir))

            dump_path = find_dump_archive(extract_dir)
            if dump_path is None:
                raise RestoreError(
                    "No mongodump archive found in backup",
                    details={"file_id": file_id},
                )

            job.add_file(working_zip.name, str(working_zip), working_zip.stat().st_size)
            job.add_file(dump_path.name, str(dump_path), dump_path.stat().st_size)

            command = restore_command(self.config, dump_path, target_db)
            command[-1] = "--uri=" + redact_uri(command[-1][len("--uri="):])
            logger.info(
                "restore_ready",
                job_id=job.id,
                archive=str(working_zip),
                dump=str(dump_path),
                command=" ".join(command),
            )
            job.complete()
        except Exception as e:
            failure = e
            if not job.is_terminal:
                job.fail(str(e))
            logger.error("restore_failed", job_id=job.id, error=str(e), error_type=type(e).__name__)
            self._remove_tree(download_dir)
        finally:
            await self._finish(job)

        await self._notify(job, "Restore")

        if failure is not None and raise_on_failure:
            raise failure
        return job

    async def _download(self, file_id: str, dest: Path) -> None:
        try:
            await self.storage.download(file_id, dest)
        except DriveBackupError:
            raise
        except Exception as e:
            raise DownloadFailedError(
                f"Download failed: {e}", details={"file_id": file_id}
            ) from e

    async def _recover_archive(self, job: BackupJob, download_file: Path) -> Path:
        """
        Return the usable zip: the decrypted file, or the download itself.

        Without a usable key the download is used as-is. If decryption
        fails, or does not yield a zip, the artifact was most likely
        uploaded unencrypted and the download is used instead.
        """
        if not self.config.encryption_enabled:
            return download_file

        decrypted = download_file.with_name(download_file.name + ".dec")
        try:
            await self._in_thread(
                decrypt_file,
                download_file,
                decrypted,
                self.config.encryption_key,
                cancellable=True,
            )
        except EncryptionError as e:
            logger.warning("decrypt_failed_using_download", job_id=job.id, error=str(e))
            return download_file

        if not is_archive(decrypted):
            logger.warning("decrypted_file_not_zip_using_download", job_id=job.id)
            self._remove_files(decrypted)
            return download_file

        job.encrypted = True
        return decrypted

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _begin(self, job: BackupJob, status: JobStatus, busy_message: str) -> None:
        if not self.guard.try_acquire(job.id):
            raise AlreadyRunningError(
                busy_message, details={"active_job_id": self.guard.active_job_id}
            )
        try:
            job.transition(status)
            self.config.temp_dir.mkdir(parents=True, exist_ok=True)
            async with aiosqlite.connect(self.config.ledger_path) as db:
                await insert_job(db, job)
        except BaseException:
            self.guard.release(job.id)
            raise
        self._current = job

    async def _finish(self, job: BackupJob) -> None:
        """Final ledger write and guard release; runs on every exit path."""
        if not job.is_terminal:
            job.fail("Run was cancelled")
        try:
            await self._save(job)
        finally:
            self._current = None
            self.guard.release(job.id)

    async def _save(self, job: BackupJob) -> None:
        async with aiosqlite.connect(self.config.ledger_path) as db:
            await update_job(db, job)

    async def _progress(self, job: BackupJob, percent: int) -> None:
        job.progress = percent
        await self._save(job)

    async def _stage(self, name: str, awaitable: Awaitable[Any]) -> Any:
        """Await one stage under the configured deadline."""
        timeout = self.config.stage_timeout_seconds
        logger.debug("stage_started", stage=name)
        try:
            result = await asyncio.wait_for(awaitable, timeout=timeout)
        except asyncio.TimeoutError:
            raise StageTimeoutError(
                f"Stage '{name}' timed out after {timeout} seconds",
                details={"stage": name},
            )
        logger.debug("stage_completed", stage=name)
        return result

    async def _in_thread(self, func: Callable, *args, cancellable: bool = False, **kwargs) -> Any:
        return await run_in_thread(_executor, func, *args, cancellable=cancellable, **kwargs)

    async def _notify(self, job: BackupJob, kind: str) -> None:
        try:
            await self.notifier.notify(job, build_notification(job, kind))
        except Exception as e:
            logger.warning("notification_failed", job_id=job.id, error=str(e))

    def _remove_files(self, *paths: Path) -> None:
        for path in paths:
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                logger.warning("temp_file_cleanup_failed", path=str(path), error=str(e))

    def _remove_tree(self, path: Path) -> None:
        try:
            shutil.rmtree(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("temp_dir_cleanup_failed", path=str(path), error=str(e))


async def create_orchestrator(
    config: BackupConfig,
    notifier: Notifier | None = None,
) -> BackupOrchestrator:
    """
    Build and initialize an orchestrator wired to Google Drive and mongodump.

    Args:
        config: Pipeline configuration
        notifier: Optional completion notifier

    Returns:
        Initialized BackupOrchestrator
    """
    from drivebackup.storage.credentials import FileCredentialStore, FileStateStore
    from drivebackup.storage.drive import DriveStorage

    storage = DriveStorage(
        config,
        FileCredentialStore(config.token_path),
        FileStateStore(config.state_path),
    )
    orchestrator = BackupOrchestrator(config, storage, notifier=notifier)
    await orchestrator.initialize()
    return orchestrator
