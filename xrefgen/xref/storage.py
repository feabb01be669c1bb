"""Primary object storage backends for the project buckets.

Two backends implement `ObjectStorage`: the APS Object Storage Service (the
bucket the floor plans already live in) and Google Cloud Storage. Both hand
out time-limited signed URLs so the remote engine never needs our credentials
for reads, and both can describe a write-capable work item argument.
"""

from __future__ import annotations

import base64
import binascii
import logging
import os
import re
from datetime import timedelta
from typing import Protocol
from urllib.parse import quote, urlparse, urlunparse

import httpx
from google.auth.credentials import AnonymousCredentials
from google.cloud import storage
from starlette.concurrency import run_in_threadpool

from xrefgen.config import Settings
from xrefgen.xref.auth import ApsAuthClient
from xrefgen.xref.errors import StorageIOError
from xrefgen.xref.models import BucketObject, WorkItemArgument

logger = logging.getLogger(__name__)

OSS_URN_PREFIX = "urn:adsk.objects:os.object:"
_OSS_URN_PATTERN = re.compile(r"^urn:adsk\.objects:os\.object:([^/]+)/(.+)$")


class ObjectStorage(Protocol):
  """Interface for bucket storage used to stage inputs and collect the output."""

  async def signed_read_url(self, obj: BucketObject) -> str:
    """Return a time-limited URL the remote engine can GET."""
    ...

  async def upload(self, obj: BucketObject, payload: bytes, content_type: str = "application/octet-stream") -> None:
    """Write bytes to the object, replacing any previous content."""
    ...

  async def delete(self, obj: BucketObject) -> None:
    """Remove the object; a missing object is not an error."""
    ...

  async def output_argument(self, obj: BucketObject, local_name: str) -> WorkItemArgument:
    """Return a write-capable argument the remote engine PUTs its result to."""
    ...

  def resolve_reference(self, reference: str, default_bucket: str) -> BucketObject:
    """Map a stored floor-plan reference onto a bucket object."""
    ...


def encode_object_urn(obj: BucketObject) -> str:
  """Return the unpadded URL-safe base64 URN used by the viewer for an OSS object."""
  raw = f"{OSS_URN_PREFIX}{obj.bucket}/{obj.key}".encode()
  return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def decode_object_urn(urn: str) -> BucketObject:
  """Decode a base64 object URN (standard or URL-safe, padding optional)."""
  normalized = urn.strip().replace("-", "+").replace("_", "/")
  normalized += "=" * (-len(normalized) % 4)
  try:
    decoded = base64.b64decode(normalized, validate=True).decode("utf-8")
  except (binascii.Error, UnicodeDecodeError) as exc:
    raise StorageIOError(f"Invalid object URN: {urn[:50]}") from exc

  match = _OSS_URN_PATTERN.match(decoded)
  if not match:
    raise StorageIOError(f"Invalid URN format: {decoded}")
  return BucketObject(bucket=match.group(1), key=match.group(2))


def redact_url(url: str) -> str:
  """Strip the query string so signatures never end up in logs."""
  parsed = urlparse(url)
  if not parsed.query:
    return url
  return urlunparse((parsed.scheme, parsed.netloc, parsed.path, "", "", "")) + "?<redacted>"


class OssObjectStorage:
  """APS Object Storage Service over its REST API."""

  def __init__(self, http: httpx.AsyncClient, auth: ApsAuthClient, *, base_url: str, region: str, signed_url_minutes: int = 60) -> None:
    self._http = http
    self._auth = auth
    self._base_url = base_url.rstrip("/")
    self._region = region
    self._signed_url_minutes = signed_url_minutes

  def _object_url(self, obj: BucketObject) -> str:
    return f"{self._base_url}/buckets/{obj.bucket}/objects/{quote(obj.key, safe='')}"

  async def _auth_headers(self) -> dict[str, str]:
    token = await self._auth.get_token()
    return {"Authorization": f"Bearer {token}"}

  async def signed_read_url(self, obj: BucketObject) -> str:
    try:
      response = await self._http.post(f"{self._object_url(obj)}/signed", json={"minutesExpiration": self._signed_url_minutes}, headers=await self._auth_headers())
    except httpx.RequestError as exc:
      raise StorageIOError(f"Failed to sign {obj.bucket}/{obj.key}: {exc}") from exc

    if not response.is_success:
      raise StorageIOError(f"Failed to sign {obj.bucket}/{obj.key}: {response.status_code} {response.text}")

    signed_url = response.json().get("signedUrl")
    if not signed_url:
      raise StorageIOError(f"Signing {obj.bucket}/{obj.key} returned no URL")
    return signed_url

  async def upload(self, obj: BucketObject, payload: bytes, content_type: str = "application/octet-stream") -> None:
    """Upload through a single-part signed S3 upload: request URL, PUT, complete."""
    upload_url = f"{self._object_url(obj)}/signeds3upload"
    try:
      start = await self._http.get(upload_url, params={"parts": 1}, headers=await self._auth_headers())
      if not start.is_success:
        raise StorageIOError(f"Failed to get upload URL for {obj.bucket}/{obj.key}: {start.status_code} {start.text}")

      session = start.json()
      upload_key = session.get("uploadKey")
      urls = session.get("urls") or []
      if not upload_key or not urls:
        raise StorageIOError(f"Upload session for {obj.bucket}/{obj.key} is incomplete")

      put = await self._http.put(urls[0], content=payload, headers={"Content-Type": content_type})
      if not put.is_success:
        raise StorageIOError(f"Upload of {obj.bucket}/{obj.key} failed: {put.status_code}")

      etag = put.headers.get("etag", "")
      complete = await self._http.post(
        upload_url,
        json={"uploadKey": upload_key, "parts": [{"partNumber": 1, "etag": etag}]},
        headers={**await self._auth_headers(), "Content-Type": "application/json"},
      )
      if not complete.is_success:
        raise StorageIOError(f"Failed to complete upload of {obj.bucket}/{obj.key}: {complete.status_code} {complete.text}")
    except httpx.RequestError as exc:
      raise StorageIOError(f"Upload of {obj.bucket}/{obj.key} failed: {exc}") from exc

    logger.info("Uploaded %s bytes to oss://%s/%s", len(payload), obj.bucket, obj.key)

  async def delete(self, obj: BucketObject) -> None:
    try:
      response = await self._http.delete(self._object_url(obj), headers=await self._auth_headers())
    except httpx.RequestError as exc:
      raise StorageIOError(f"Failed to delete {obj.bucket}/{obj.key}: {exc}") from exc
    if not response.is_success and response.status_code != 404:
      raise StorageIOError(f"Failed to delete {obj.bucket}/{obj.key}: {response.status_code}")

  async def output_argument(self, obj: BucketObject, local_name: str) -> WorkItemArgument:
    # The engine writes to the object URN directly, authorized with our bearer token.
    token = await self._auth.get_token()
    return WorkItemArgument(
      url=f"{OSS_URN_PREFIX}{obj.bucket}/{obj.key}",
      verb="put",
      local_name=local_name,
      headers={"Authorization": f"Bearer {token}", "x-ads-region": self._region},
    )

  def resolve_reference(self, reference: str, default_bucket: str) -> BucketObject:
    if reference.startswith(OSS_URN_PREFIX):
      match = _OSS_URN_PATTERN.match(reference)
      if not match:
        raise StorageIOError(f"Invalid URN format: {reference}")
      return BucketObject(bucket=match.group(1), key=match.group(2))
    return decode_object_urn(reference)


class GcsObjectStorage:
  """Google Cloud Storage with V4 signed URLs."""

  def __init__(self, settings: Settings) -> None:
    self._signed_url_minutes = settings.signed_url_minutes
    self._storage_host = settings.gcs_storage_host
    if self._storage_host:
      emulator_endpoint = _normalize_emulator_endpoint(self._storage_host)
      os.environ["STORAGE_EMULATOR_HOST"] = emulator_endpoint
      self._client = storage.Client(project=settings.gcp_project_id or "local-dev", credentials=AnonymousCredentials(), client_options={"api_endpoint": emulator_endpoint})
    else:
      self._client = storage.Client(project=settings.gcp_project_id)

  def _blob(self, obj: BucketObject) -> storage.Blob:
    return self._client.bucket(obj.bucket).blob(obj.key)

  async def _sign(self, obj: BucketObject, method: str) -> str:
    if self._storage_host:
      raise StorageIOError("Signed URLs are not supported with GCS emulator host.")
    blob = self._blob(obj)
    expiration = timedelta(minutes=self._signed_url_minutes)
    try:
      return await run_in_threadpool(blob.generate_signed_url, version="v4", expiration=expiration, method=method)
    except Exception as exc:
      raise StorageIOError(f"Failed to sign gs://{obj.bucket}/{obj.key} for {method}: {exc}") from exc

  async def signed_read_url(self, obj: BucketObject) -> str:
    return await self._sign(obj, "GET")

  async def upload(self, obj: BucketObject, payload: bytes, content_type: str = "application/octet-stream") -> None:
    blob = self._blob(obj)
    blob.content_type = content_type
    try:
      await run_in_threadpool(blob.upload_from_string, payload, content_type)
    except Exception as exc:
      raise StorageIOError(f"Upload of gs://{obj.bucket}/{obj.key} failed: {exc}") from exc
    logger.info("Uploaded %s bytes to gs://%s/%s", len(payload), obj.bucket, obj.key)

  async def delete(self, obj: BucketObject) -> None:
    blob = self._blob(obj)

    def _delete_if_present() -> None:
      if blob.exists(client=self._client):
        blob.delete()

    try:
      await run_in_threadpool(_delete_if_present)
    except Exception as exc:
      raise StorageIOError(f"Failed to delete gs://{obj.bucket}/{obj.key}: {exc}") from exc

  async def output_argument(self, obj: BucketObject, local_name: str) -> WorkItemArgument:
    return WorkItemArgument(url=await self._sign(obj, "PUT"), verb="put", local_name=local_name)

  def resolve_reference(self, reference: str, default_bucket: str) -> BucketObject:
    if reference.startswith("gs://"):
      bucket, _, key = reference[len("gs://") :].partition("/")
      if not bucket or not key:
        raise StorageIOError(f"Invalid GCS reference: {reference}")
      return BucketObject(bucket=bucket, key=key)
    return BucketObject(bucket=default_bucket, key=reference.lstrip("/"))


def build_object_storage(settings: Settings, http: httpx.AsyncClient, auth: ApsAuthClient) -> ObjectStorage:
  """Factory to get the configured object storage backend."""
  if settings.storage_provider == "gcs":
    return GcsObjectStorage(settings)
  return OssObjectStorage(http, auth, base_url=settings.aps_oss_base_url, region=settings.aps_oss_region, signed_url_minutes=settings.signed_url_minutes)


def _normalize_emulator_endpoint(raw_endpoint: str) -> str:
  """Normalize emulator endpoint so SDK receives scheme+host+port only."""
  parsed = urlparse(raw_endpoint)
  if not parsed.scheme or not parsed.netloc:
    return raw_endpoint.rstrip("/")
  return urlunparse((parsed.scheme, parsed.netloc, "", "", "", "")).rstrip("/")
