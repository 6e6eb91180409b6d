# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
drivebackup Drive Storage - Google Drive adapter for backup artifacts.

Authenticates with the OAuth2 authorization-code flow, keeps backups in
a single folder and exposes upload/list/delete/download. The Google client
is synchronous, so every call runs on a single worker thread. Uploads and
downloads stop between chunks when the awaiting task is cancelled.

Transport errors (googleapiclient.errors.HttpError and friends) propagate
unchanged; callers decide how a failed call affects their job.
"""

import asyncio
import json
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Callable, List

import structlog

from drivebackup.config import BackupConfig
from drivebackup.errors import explain_missing_oauth_env, explain_missing_tokens
from drivebackup.exceptions import (
    AuthRequiredError,
    ConfigurationError,
    DownloadFailedError,
    UploadFailedError,
)
from drivebackup.storage.base import RemoteFile, UploadResult
from drivebackup.storage.credentials import CredentialStore, StateStore
from drivebackup.workers import run_in_thread

logger = structlog.get_logger()

# Blocking Google API calls. One worker: the cached client and its httplib2
# connection must never be used from two threads at once.
_executor = ThreadPoolExecutor(max_workers=1)

SCOPES = [
    "https://www.googleapis.com/auth/drive.file",
    "https://www.googleapis.com/auth/drive.metadata",
]

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
FOLDER_STATE_KEY = "backupFolderId"
CHUNK_SIZE = 8 * 1024 * 1024
LIST_PAGE_SIZE = 1000


def build_drive_service(credentials: Any) -> Any:
    """Build a Drive v3 client for the given credentials."""
    from googleapiclient.discovery import build

    return build("drive", "v3", credentials=credentials, cache_discovery=False)


class DriveStorage:
    """
    Google Drive implementation of RemoteStorage.

    Args:
        config: Pipeline configuration (OAuth client, folder override/name)
        credential_store: Where OAuth tokens are loaded from and saved to
        state_store: Where the created folder id is cached
        service_factory: Builds a Drive client from credentials; replaced
            in tests
    """

    def __init__(
        self,
        config: BackupConfig,
        credential_store: CredentialStore,
        state_store: StateStore,
        service_factory: Callable[[Any], Any] = build_drive_service,
    ):
        self.config = config
        self.credential_store = credential_store
        self.state_store = state_store
        self._service_factory = service_factory
        self._service: Any = None
        self._folder_id: str | None = None
        self._folder_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # OAuth2
    # ------------------------------------------------------------------

    def _flow(self) -> Any:
        from google_auth_oauthlib.flow import Flow

        if not self.config.oauth_configured:
            raise ConfigurationError(explain_missing_oauth_env())

        client_config = {
            "web": {
                "client_id": self.config.oauth_client_id,
                "client_secret": self.config.oauth_client_secret,
                "auth_uri": "https://accounts.google.com/o/oauth2/auth",
                "token_uri": "https://oauth2.googleapis.com/token",
                "redirect_uris": [self.config.oauth_redirect_uri],
            }
        }
        # The code is exchanged in a later request or process, so no PKCE verifier
        return Flow.from_client_config(
            client_config,
            scopes=SCOPES,
            redirect_uri=self.config.oauth_redirect_uri,
            autogenerate_code_verifier=False,
        )

    def get_auth_url(self) -> str:
        """URL the operator opens to grant Drive access."""
        url, _state = self._flow().authorization_url(
            access_type="offline",
            prompt="consent",
        )
        return url

    async def exchange_code(self, code: str) -> Any:
        """
        Exchange an authorization code for tokens and persist them.

        Returns:
            google.oauth2.credentials.Credentials
        """
        flow = self._flow()
        await self._in_thread(flow.fetch_token, code=code)
        credentials = flow.credentials
        self.credential_store.save(json.loads(credentials.to_json()))
        self._service = None
        logger.info("drive_authorized")
        return credentials

    def _load_credentials(self) -> Any:
        """
        Load stored credentials, refreshing them if they have expired.

        Raises:
            AuthRequiredError: If no usable credentials are on hand
        """
        from google.auth.exceptions import RefreshError
        from google.auth.transport.requests import Request
        from google.oauth2.credentials import Credentials

        info = self.credential_store.load()
        if not info:
            raise AuthRequiredError(explain_missing_tokens())

        try:
            credentials = Credentials.from_authorized_user_info(info, SCOPES)
        except ValueError as e:
            raise AuthRequiredError(
                explain_missing_tokens(), details={"error": str(e)}
            )

        if credentials.valid:
            return credentials

        if not credentials.refresh_token:
            raise AuthRequiredError(explain_missing_tokens())

        try:
            credentials.refresh(Request())
        except RefreshError as e:
            raise AuthRequiredError(
                "Google Drive authorization expired; authorize again",
                details={"error": str(e)},
            )

        self.credential_store.save(json.loads(credentials.to_json()))
        logger.info("drive_tokens_refreshed")
        return credentials

    def _get_service(self) -> Any:
        if self._service is None:
            self._service = self._service_factory(self._load_credentials())
        return self._service

    async def _in_thread(self, func: Callable, *args, cancellable: bool = False, **kwargs) -> Any:
        return await run_in_thread(_executor, func, *args, cancellable=cancellable, **kwargs)

    # ------------------------------------------------------------------
    # Folder
    # ------------------------------------------------------------------

    async def ensure_folder(self) -> str:
        """
        Resolve the backup folder id, creating the folder at most once.

        Lookup order: configuration override, id cached in memory or in
        the state store, then a newly created folder (whose id is cached).
        """
        service = await self._in_thread(self._get_service)

        if self.config.folder_id and self.config.folder_id.strip():
            return self.config.folder_id.strip()

        async with self._folder_lock:
            if self._folder_id:
                return self._folder_id

            cached = self.state_store.get(FOLDER_STATE_KEY)
            if cached:
                self._folder_id = cached
                return cached

            response = await self._in_thread(
                service.files()
                .create(
                    body={"name": self.config.folder_name, "mimeType": FOLDER_MIME_TYPE},
                    fields="id",
                )
                .execute
            )
            folder_id = response["id"]
            self.state_store.set(FOLDER_STATE_KEY, folder_id)
            self._folder_id = folder_id

            logger.info("drive_folder_created", folder_id=folder_id, name=self.config.folder_name)
            return folder_id

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    async def upload(self, local_path: Path, remote_name: str, folder_id: str) -> UploadResult:
        """
        Upload a file in resumable chunks.

        Returns:
            Remote id and size in bytes
        """
        return await self._in_thread(
            self._upload_sync, Path(local_path), remote_name, folder_id, cancellable=True
        )

    def _upload_sync(
        self,
        local_path: Path,
        remote_name: str,
        folder_id: str,
        cancel: threading.Event | None = None,
    ) -> UploadResult:
        from googleapiclient.http import MediaFileUpload

        service = self._get_service()
        file_size = local_path.stat().st_size

        media = MediaFileUpload(
            str(local_path),
            mimetype="application/octet-stream",
            chunksize=CHUNK_SIZE,
            resumable=True,
        )
        body = {"name": remote_name}
        if folder_id:
            body["parents"] = [folder_id]

        request = service.files().create(body=body, media_body=media, fields="id, size")
        response = None
        while response is None:
            if cancel is not None and cancel.is_set():
                # The resumable session is never finalized, so no remote file exists
                raise UploadFailedError("Upload cancelled", details={"name": remote_name})
            status, response = request.next_chunk()
            if status:
                logger.debug("upload_progress", name=remote_name, percent=int(status.progress() * 100))

        if cancel is not None and cancel.is_set():
            service.files().delete(fileId=response["id"]).execute()
            raise UploadFailedError(
                "Upload cancelled", details={"name": remote_name, "file_id": response["id"]}
            )

        logger.info("drive_file_uploaded", file_id=response["id"], name=remote_name, size=file_size)
        return UploadResult(id=response["id"], size_bytes=int(response.get("size") or file_size))

    async def list(self, folder_id: str) -> List[RemoteFile]:
        """List non-trashed files in the folder, newest first."""
        return await self._in_thread(self._list_sync, folder_id)

    def _list_sync(self, folder_id: str) -> List[RemoteFile]:
        service = self._get_service()
        files: List[RemoteFile] = []
        page_token: str | None = None

        while True:
            response = (
                service.files()
                .list(
                    q=f"'{folder_id}' in parents and trashed = false",
                    orderBy="createdTime desc",
                    pageSize=LIST_PAGE_SIZE,
                    fields="nextPageToken, files(id, name, createdTime, size)",
                    pageToken=page_token,
                )
                .execute()
            )
            for item in response.get("files", []):
                files.append(
                    RemoteFile(
                        id=item["id"],
                        name=item.get("name", ""),
                        created_time=item.get("createdTime", ""),
                        size_bytes=int(item.get("size") or 0),
                    )
                )
            page_token = response.get("nextPageToken")
            if not page_token:
                break

        files.sort(key=lambda f: f["created_time"], reverse=True)
        return files

    async def delete(self, file_id: str) -> None:
        service = await self._in_thread(self._get_service)
        await self._in_thread(service.files().delete(fileId=file_id).execute)
        logger.info("drive_file_deleted", file_id=file_id)

    async def download(self, file_id: str, dest_path: Path) -> None:
        """Stream a remote file to disk in chunks."""
        await self._in_thread(self._download_sync, file_id, Path(dest_path), cancellable=True)

    def _download_sync(
        self,
        file_id: str,
        dest_path: Path,
        cancel: threading.Event | None = None,
    ) -> None:
        from googleapiclient.http import MediaIoBaseDownload

        service = self._get_service()
        request = service.files().get_media(fileId=file_id)

        with open(dest_path, "wb") as fh:
            downloader = MediaIoBaseDownload(fh, request, chunksize=CHUNK_SIZE)
            done = False
            while not done:
                if cancel is not None and cancel.is_set():
                    break
                _status, done = downloader.next_chunk()

        if not done:
            dest_path.unlink(missing_ok=True)
            raise DownloadFailedError("Download cancelled", details={"file_id": file_id})

        logger.info("drive_file_downloaded", file_id=file_id, size=dest_path.stat().st_size)
