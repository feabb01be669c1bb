"""Google Drive uploads for generated drawings."""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import httpx
from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request
from google.oauth2 import service_account
from starlette.concurrency import run_in_threadpool

from xrefgen.utils.http_retry import execute_with_retry

logger = logging.getLogger(__name__)

DRIVE_API_URL = "https://www.googleapis.com/drive/v3/files"
DRIVE_UPLOAD_URL = "https://www.googleapis.com/upload/drive/v3/files"
DRIVE_SCOPES = ("https://www.googleapis.com/auth/drive",)
FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
DWG_MIME_TYPE = "application/acad"

TokenProvider = Callable[[], Awaitable[str]]


@dataclass(frozen=True)
class DriveUploadResult:
  """Outcome of a Drive upload."""

  success: bool
  file_id: str | None = None
  web_view_link: str | None = None
  error: str | None = None


class ServiceAccountTokenProvider:
  """Issues Drive access tokens from a service-account key file."""

  def __init__(self, key_path: str) -> None:
    self._credentials = service_account.Credentials.from_service_account_file(key_path, scopes=list(DRIVE_SCOPES))
    self._lock = asyncio.Lock()

  async def __call__(self) -> str:
    async with self._lock:
      if not self._credentials.valid:
        # google-auth refreshes synchronously.
        await run_in_threadpool(self._credentials.refresh, Request())
      return self._credentials.token


class DriveUploader:
  """Uploads files into shared-drive folders through the Drive v3 REST API."""

  def __init__(
    self,
    http: httpx.AsyncClient,
    token_provider: TokenProvider,
    *,
    output_folder_name: str = "Output",
    max_attempts: int = 3,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
  ) -> None:
    self._http = http
    self._token_provider = token_provider
    self._output_folder_name = output_folder_name
    self._max_attempts = max_attempts
    self._sleep = sleep

  async def _headers(self) -> dict[str, str]:
    return {"Authorization": f"Bearer {await self._token_provider()}"}

  async def find_output_folder(self, folder_id: str) -> str | None:
    """Return the id of the output subfolder inside `folder_id`, if there is one."""
    name = self._output_folder_name.replace("'", "\\'")
    query = f"'{folder_id}' in parents and name = '{name}' and mimeType = '{FOLDER_MIME_TYPE}' and trashed = false"
    params = {"q": query, "fields": "files(id,name)", "supportsAllDrives": "true", "includeItemsFromAllDrives": "true", "pageSize": "1"}

    async def _list() -> httpx.Response:
      response = await self._http.get(DRIVE_API_URL, params=params, headers=await self._headers())
      response.raise_for_status()
      return response

    response = await execute_with_retry(operation_name="drive_find_output_folder", func=_list, max_attempts=self._max_attempts, sleep=self._sleep)
    files = response.json().get("files") or []
    return files[0]["id"] if files else None

  async def upload_file(self, folder_id: str, filename: str, payload: bytes, mime_type: str = DWG_MIME_TYPE) -> DriveUploadResult:
    """Multipart upload of `payload` as `filename` into the folder."""
    boundary = f"xref-{uuid.uuid4().hex}"
    metadata = json.dumps({"name": filename, "parents": [folder_id]})
    body = b"".join(
      [
        f"--{boundary}\r\nContent-Type: application/json; charset=UTF-8\r\n\r\n{metadata}\r\n".encode(),
        f"--{boundary}\r\nContent-Type: {mime_type}\r\n\r\n".encode(),
        payload,
        f"\r\n--{boundary}--\r\n".encode(),
      ]
    )
    params = {"uploadType": "multipart", "supportsAllDrives": "true", "fields": "id,name,webViewLink"}

    async def _upload() -> httpx.Response:
      headers = {**await self._headers(), "Content-Type": f"multipart/related; boundary={boundary}"}
      response = await self._http.post(DRIVE_UPLOAD_URL, params=params, content=body, headers=headers)
      response.raise_for_status()
      return response

    response = await execute_with_retry(operation_name="drive_upload_file", func=_upload, max_attempts=self._max_attempts, sleep=self._sleep)
    data = response.json()
    return DriveUploadResult(success=True, file_id=data.get("id"), web_view_link=data.get("webViewLink"))

  async def upload_to_output(self, folder_id: str, filename: str, payload: bytes) -> DriveUploadResult:
    """Upload into the folder's output subfolder, or the folder itself when it has none."""
    try:
      target = await self.find_output_folder(folder_id) or folder_id
      result = await self.upload_file(target, filename, payload)
    except (httpx.HTTPError, GoogleAuthError, KeyError, ValueError) as exc:
      logger.error("Drive upload of %s into %s failed: %s", filename, folder_id, exc)
      return DriveUploadResult(success=False, error=str(exc))

    logger.info("Uploaded %s to Drive folder %s (file %s)", filename, target, result.file_id)
    return result
