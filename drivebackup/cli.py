# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
drivebackup command line.

    drivebackup auth-url                 # print the Google consent URL
    drivebackup auth-code CODE           # store tokens for an authorization code
    drivebackup backup                   # run one backup now
    drivebackup restore FILE_ID          # download + decrypt + extract a backup
    drivebackup list                     # remote backups, newest first
    drivebackup history --limit 20       # job ledger
    drivebackup decrypt KEY INPUT OUTPUT # decrypt a downloaded .zip.enc
    drivebackup serve                    # run the cron scheduler

Configuration comes from the environment (see drivebackup.env).
Exit codes: 0 success, 1 job failed, 2 usage or configuration error.
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import List

import structlog

from drivebackup.config import MIN_ENCRYPTION_KEY_LENGTH, BackupConfig
from drivebackup.core import BackupOrchestrator, create_orchestrator
from drivebackup.env import create_config_from_env
from drivebackup.exceptions import (
    AuthRequiredError,
    ConfigurationError,
    DriveBackupError,
    ValidationError,
)
from drivebackup.jobs import BackupJob, JobStatus, JobType
from drivebackup.stages.crypto import decrypt_file, is_key_usable
from drivebackup.storage.credentials import FileCredentialStore, FileStateStore
from drivebackup.storage.drive import DriveStorage

logger = structlog.get_logger()

EXIT_OK = 0
EXIT_JOB_FAILED = 1
EXIT_USAGE = 2


def configure_logging(json_logs: bool = False, level: str = "INFO") -> None:
    """Configure structlog; logs go to stderr so stdout stays parseable."""
    renderer = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


def _print_json(payload) -> None:
    print(json.dumps(payload, indent=2, default=str))


def _job_exit_code(job: BackupJob) -> int:
    return EXIT_OK if job.status == JobStatus.COMPLETED else EXIT_JOB_FAILED


def _drive_storage(config: BackupConfig) -> DriveStorage:
    return DriveStorage(
        config,
        FileCredentialStore(config.token_path),
        FileStateStore(config.state_path),
    )


# ----------------------------------------------------------------------
# Commands
# ----------------------------------------------------------------------


async def cmd_auth_url(args: argparse.Namespace, config: BackupConfig) -> int:
    print(_drive_storage(config).get_auth_url())
    return EXIT_OK


async def cmd_auth_code(args: argparse.Namespace, config: BackupConfig) -> int:
    await _drive_storage(config).exchange_code(args.code)
    print(f"Tokens saved to {config.token_path}")
    return EXIT_OK


async def cmd_backup(args: argparse.Namespace, config: BackupConfig) -> int:
    orchestrator = await create_orchestrator(config)
    job = await orchestrator.start_backup(JobType.MANUAL, args.initiated_by)
    _print_json(job.to_dict())
    return _job_exit_code(job)


async def cmd_restore(args: argparse.Namespace, config: BackupConfig) -> int:
    orchestrator = await create_orchestrator(config)
    job = await orchestrator.restore_backup(
        args.file_id, args.target_db, initiated_by=args.initiated_by
    )
    _print_json(job.to_dict())
    return _job_exit_code(job)


async def cmd_list(args: argparse.Namespace, config: BackupConfig) -> int:
    storage = _drive_storage(config)
    folder_id = await storage.ensure_folder()
    _print_json(await storage.list(folder_id))
    return EXIT_OK


async def cmd_history(args: argparse.Namespace, config: BackupConfig) -> int:
    orchestrator = BackupOrchestrator(config, _drive_storage(config))
    await orchestrator.initialize()
    jobs = await orchestrator.list_history(limit=args.limit)
    _print_json([job.to_dict() for job in jobs])
    return EXIT_OK


async def cmd_decrypt(args: argparse.Namespace, config: BackupConfig | None) -> int:
    if not is_key_usable(args.key):
        raise ValidationError(
            f"Decryption key must be at least {MIN_ENCRYPTION_KEY_LENGTH} characters",
            details={"length": len(args.key)},
        )
    loop = asyncio.get_running_loop()
    await loop.run_in_executor(
        None, decrypt_file, Path(args.input), Path(args.output), args.key
    )
    print(f"Decrypted {args.input} -> {args.output}")
    return EXIT_OK


async def cmd_serve(args: argparse.Namespace, config: BackupConfig) -> int:
    from drivebackup.scheduler import BackupScheduler

    orchestrator = await create_orchestrator(config)
    scheduler = BackupScheduler(orchestrator, config)
    scheduler.start()
    try:
        await asyncio.Event().wait()
    finally:
        scheduler.shutdown()
    return EXIT_OK


# ----------------------------------------------------------------------
# Entry point
# ----------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="drivebackup",
        description="MongoDB + uploads backups to Google Drive",
    )
    parser.add_argument("--json-logs", action="store_true", help="Emit JSON log lines")
    parser.add_argument("--log-level", default="INFO", help="Log level (default: INFO)")

    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("auth-url", help="Print the Google OAuth consent URL")
    p.set_defaults(handler=cmd_auth_url)

    p = sub.add_parser("auth-code", help="Exchange an authorization code for tokens")
    p.add_argument("code")
    p.set_defaults(handler=cmd_auth_code)

    p = sub.add_parser("backup", help="Run a backup now")
    p.add_argument("--initiated-by", default=None, help="Recorded on the job")
    p.set_defaults(handler=cmd_backup)

    p = sub.add_parser("restore", help="Download, decrypt and extract a backup")
    p.add_argument("file_id")
    p.add_argument("--target-db", default=None, help="Database for the suggested mongorestore")
    p.add_argument("--initiated-by", default=None, help="Recorded on the job")
    p.set_defaults(handler=cmd_restore)

    p = sub.add_parser("list", help="List remote backups")
    p.set_defaults(handler=cmd_list)

    p = sub.add_parser("history", help="Show the job ledger")
    p.add_argument("--limit", type=int, default=50)
    p.set_defaults(handler=cmd_history)

    p = sub.add_parser("decrypt", help="Decrypt a downloaded .zip.enc file")
    p.add_argument("key")
    p.add_argument("input")
    p.add_argument("output")
    p.set_defaults(handler=cmd_decrypt, needs_config=False)

    p = sub.add_parser("serve", help="Run scheduled backups until interrupted")
    p.set_defaults(handler=cmd_serve)

    return parser


def main(argv: List[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(json_logs=args.json_logs, level=args.log_level)

    try:
        config = create_config_from_env() if getattr(args, "needs_config", True) else None
        return asyncio.run(args.handler(args, config))
    except (ConfigurationError, ValidationError, AuthRequiredError) as e:
        print(f"error: {e}", file=sys.stderr)
        return EXIT_USAGE
    except DriveBackupError as e:
        print(f"error: {e}", file=sys.stderr)
        return EXIT_JOB_FAILED
    except KeyboardInterrupt:
        logger.info("interrupted")
        return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
