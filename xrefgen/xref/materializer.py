"""Collect the generated drawing and move it to long-term storage."""

from __future__ import annotations

import logging

import httpx

from xrefgen.xref.drive import DriveUploader
from xrefgen.xref.errors import RelocationFailedError, StorageIOError, XrefError
from xrefgen.xref.models import BucketObject, DriveFolder
from xrefgen.xref.storage import ObjectStorage, redact_url

logger = logging.getLogger(__name__)


class ResultMaterializer:
  """Downloads the work item output and relocates it to Drive."""

  def __init__(self, http: httpx.AsyncClient, storage: ObjectStorage, drive: DriveUploader | None = None) -> None:
    self._http = http
    self._storage = storage
    self._drive = drive

  async def download(self, obj: BucketObject) -> bytes:
    """Fetch the output through a freshly signed URL."""
    signed_url = await self._storage.signed_read_url(obj)
    try:
      response = await self._http.get(signed_url)
    except httpx.RequestError as exc:
      raise StorageIOError(f"Failed to download {obj.bucket}/{obj.key}: {exc}") from exc
    if not response.is_success:
      raise StorageIOError(f"Failed to download {obj.bucket}/{obj.key} from {redact_url(signed_url)}: {response.status_code}")
    logger.info("Downloaded %s (%s bytes)", obj.key, len(response.content))
    return response.content

  async def relocate(self, destination: DriveFolder, filename: str, payload: bytes, transient: BucketObject) -> str:
    """Copy to Drive and drop the bucket copy; returns the Drive view link."""
    if self._drive is None:
      raise RelocationFailedError("Drive uploads are not configured.")

    try:
      result = await self._drive.upload_to_output(destination.folder_id, filename, payload)
    except Exception as exc:
      raise RelocationFailedError(f"Drive upload failed: {exc}") from exc
    if not result.success or not result.web_view_link:
      raise RelocationFailedError(result.error or "Drive upload returned no link")

    # The drawing is safe on Drive now; a leftover bucket copy is harmless.
    try:
      await self._storage.delete(transient)
    except XrefError as exc:
      logger.warning("Could not delete transient output %s/%s: %s", transient.bucket, transient.key, exc)

    return result.web_view_link
