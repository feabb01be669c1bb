from __future__ import annotations

import httpx
import pytest
from google.auth.exceptions import RefreshError

from xrefgen.xref.drive import DRIVE_UPLOAD_URL, DriveUploader


async def _token() -> str:
  return "drive-token"


def _uploader(handler, sleep) -> DriveUploader:
  http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
  return DriveUploader(http, _token, output_folder_name="Output", sleep=sleep)


@pytest.mark.anyio
async def test_upload_targets_output_subfolder_when_present(no_sleep) -> None:
  uploads: list[httpx.Request] = []

  def handler(request: httpx.Request) -> httpx.Response:
    if request.method == "GET":
      assert "'area-v3' in parents" in request.url.params["q"]
      assert "name = 'Output'" in request.url.params["q"]
      assert request.url.params["supportsAllDrives"] == "true"
      return httpx.Response(200, json={"files": [{"id": "output-folder", "name": "Output"}]})
    uploads.append(request)
    return httpx.Response(200, json={"id": "file-1", "name": "P_F1_RV3.dwg", "webViewLink": "https://drive.test/file-1"})

  result = await _uploader(handler, no_sleep).upload_to_output("area-v3", "P_F1_RV3.dwg", b"DWG")

  assert result.success is True
  assert result.file_id == "file-1"
  assert result.web_view_link == "https://drive.test/file-1"
  [upload] = uploads
  assert str(upload.url).startswith(DRIVE_UPLOAD_URL)
  assert upload.url.params["uploadType"] == "multipart"
  assert upload.url.params["fields"] == "id,name,webViewLink"
  assert upload.headers["authorization"] == "Bearer drive-token"
  assert b'"parents": ["output-folder"]' in upload.content
  assert b"DWG" in upload.content


@pytest.mark.anyio
async def test_upload_falls_back_to_given_folder(no_sleep) -> None:
  def handler(request: httpx.Request) -> httpx.Response:
    if request.method == "GET":
      return httpx.Response(200, json={"files": []})
    return httpx.Response(200, json={"id": "file-2", "webViewLink": "https://drive.test/file-2"})

  result = await _uploader(handler, no_sleep).upload_to_output("area-v3", "out.dwg", b"DWG")

  assert result.success is True


@pytest.mark.anyio
async def test_rate_limited_upload_is_retried_with_backoff(no_sleep) -> None:
  attempts = []

  def handler(request: httpx.Request) -> httpx.Response:
    if request.method == "GET":
      return httpx.Response(200, json={"files": []})
    attempts.append(request)
    if len(attempts) < 3:
      return httpx.Response(429, json={"error": "rate"})
    return httpx.Response(200, json={"id": "file-3", "webViewLink": "https://drive.test/file-3"})

  result = await _uploader(handler, no_sleep).upload_to_output("folder", "out.dwg", b"DWG")

  assert result.success is True
  assert len(attempts) == 3
  assert no_sleep.delays == [2.0, 4.0]


@pytest.mark.anyio
async def test_client_errors_fail_without_retry(no_sleep) -> None:
  attempts = []

  def handler(request: httpx.Request) -> httpx.Response:
    if request.method == "GET":
      return httpx.Response(200, json={"files": []})
    attempts.append(request)
    return httpx.Response(404, json={"error": "no folder"})

  result = await _uploader(handler, no_sleep).upload_to_output("folder", "out.dwg", b"DWG")

  assert result.success is False
  assert result.error
  assert len(attempts) == 1
  assert no_sleep.delays == []


@pytest.mark.anyio
async def test_persistent_server_errors_give_up_after_three_attempts(no_sleep) -> None:
  attempts = []

  def handler(request: httpx.Request) -> httpx.Response:
    attempts.append(request)
    return httpx.Response(503)

  result = await _uploader(handler, no_sleep).upload_to_output("folder", "out.dwg", b"DWG")

  assert result.success is False
  # The folder lookup is the first call and exhausts its own attempts.
  assert len(attempts) == 3


@pytest.mark.anyio
async def test_credential_refresh_failure_is_a_failed_result(no_sleep) -> None:
  async def _revoked_token() -> str:
    raise RefreshError("invalid_grant: account disabled")

  def handler(request: httpx.Request) -> httpx.Response:
    raise AssertionError("no request expected without a token")

  http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
  result = await DriveUploader(http, _revoked_token, sleep=no_sleep).upload_to_output("folder", "out.dwg", b"DWG")

  assert result.success is False
  assert "invalid_grant" in result.error
