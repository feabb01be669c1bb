from __future__ import annotations

import base64
import json
from types import SimpleNamespace
from unittest.mock import patch

import httpx
import pytest

from xrefgen.xref.errors import StorageIOError
from xrefgen.xref.models import BucketObject
from xrefgen.xref.storage import GcsObjectStorage, OssObjectStorage, build_object_storage, decode_object_urn, encode_object_urn, redact_url

OSS_URL = "https://aps.test/oss/v2"


def _storage(handler, auth) -> OssObjectStorage:
  http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
  return OssObjectStorage(http, auth, base_url=OSS_URL, region="EMEA", signed_url_minutes=60)


def test_decode_object_urn_accepts_standard_and_url_safe_base64() -> None:
  raw = b"urn:adsk.objects:os.object:proj-bucket/floorplans/F1 plan?.dwg"
  standard = base64.b64encode(raw).decode()
  url_safe = base64.urlsafe_b64encode(raw).decode().rstrip("=")

  expected = BucketObject(bucket="proj-bucket", key="floorplans/F1 plan?.dwg")
  assert decode_object_urn(standard) == expected
  assert decode_object_urn(url_safe) == expected


def test_encode_object_urn_round_trips() -> None:
  obj = BucketObject(bucket="b", key="k/v.dwg")
  assert decode_object_urn(encode_object_urn(obj)) == obj


def test_decode_object_urn_rejects_foreign_urns() -> None:
  with pytest.raises(StorageIOError):
    decode_object_urn(base64.b64encode(b"not-an-object-urn").decode())
  with pytest.raises(StorageIOError):
    decode_object_urn("%%%")


def test_redact_url_drops_signature() -> None:
  assert redact_url("https://s3.test/obj?X-Amz-Signature=secret") == "https://s3.test/obj?<redacted>"
  assert redact_url("https://s3.test/obj") == "https://s3.test/obj"


@pytest.mark.anyio
async def test_signed_read_url_requests_sixty_minutes(static_auth) -> None:
  captured = {}

  def handler(request: httpx.Request) -> httpx.Response:
    captured["path"] = request.url.raw_path.decode()
    captured["body"] = json.loads(request.content)
    captured["auth"] = request.headers["authorization"]
    return httpx.Response(200, json={"signedUrl": "https://signed.test/x"})

  url = await _storage(handler, static_auth).signed_read_url(BucketObject(bucket="b1", key="xref-scratch/r1/script.scr"))

  assert url == "https://signed.test/x"
  assert captured["path"] == "/oss/v2/buckets/b1/objects/xref-scratch%2Fr1%2Fscript.scr/signed"
  assert captured["body"] == {"minutesExpiration": 60}
  assert captured["auth"] == "Bearer test-token"


@pytest.mark.anyio
async def test_signing_failure_raises_storage_error(static_auth) -> None:
  storage = _storage(lambda request: httpx.Response(403, text="denied"), static_auth)
  with pytest.raises(StorageIOError, match="b1/key"):
    await storage.signed_read_url(BucketObject(bucket="b1", key="key"))


@pytest.mark.anyio
async def test_upload_runs_signed_s3_sequence(static_auth) -> None:
  steps: list[tuple[str, str]] = []
  completed = {}

  def handler(request: httpx.Request) -> httpx.Response:
    steps.append((request.method, request.url.host))
    if request.method == "GET":
      assert request.url.params["parts"] == "1"
      return httpx.Response(200, json={"uploadKey": "uk-1", "urls": ["https://s3.test/upload?sig=1"]})
    if request.method == "PUT":
      assert request.content == b"(command)"
      assert "authorization" not in request.headers
      return httpx.Response(200, headers={"etag": '"etag-1"'})
    completed.update(json.loads(request.content))
    return httpx.Response(200, json={})

  await _storage(handler, static_auth).upload(BucketObject(bucket="b1", key="script.scr"), b"(command)", "text/plain")

  assert [method for method, _ in steps] == ["GET", "PUT", "POST"]
  assert steps[1][1] == "s3.test"
  assert completed == {"uploadKey": "uk-1", "parts": [{"partNumber": 1, "etag": '"etag-1"'}]}


@pytest.mark.anyio
async def test_delete_ignores_missing_objects(static_auth) -> None:
  await _storage(lambda request: httpx.Response(404), static_auth).delete(BucketObject(bucket="b", key="k"))


@pytest.mark.anyio
async def test_output_argument_targets_object_urn_with_region(static_auth) -> None:
  argument = await _storage(lambda request: httpx.Response(200), static_auth).output_argument(BucketObject(bucket="b1", key="P_F1_RV3.dwg"), "P_F1_RV3.dwg")

  assert argument.to_payload() == {
    "url": "urn:adsk.objects:os.object:b1/P_F1_RV3.dwg",
    "verb": "put",
    "localName": "P_F1_RV3.dwg",
    "headers": {"Authorization": "Bearer test-token", "x-ads-region": "EMEA"},
  }


def test_resolve_reference_accepts_encoded_and_plain_urns(static_auth) -> None:
  storage = _storage(lambda request: httpx.Response(200), static_auth)
  encoded = encode_object_urn(BucketObject(bucket="b1", key="plan.dwg"))

  assert storage.resolve_reference(encoded, "ignored") == BucketObject(bucket="b1", key="plan.dwg")
  assert storage.resolve_reference("urn:adsk.objects:os.object:b2/a/b.dwg", "ignored") == BucketObject(bucket="b2", key="a/b.dwg")


def _gcs_settings(**overrides: object) -> SimpleNamespace:
  values = {"signed_url_minutes": 60, "gcs_storage_host": None, "gcp_project_id": "proj", "storage_provider": "gcs"}
  values.update(overrides)
  return SimpleNamespace(**values)


@pytest.mark.anyio
async def test_gcs_signs_v4_urls_for_reads_and_output() -> None:
  with patch("xrefgen.xref.storage.storage.Client") as client_cls:
    blob = client_cls.return_value.bucket.return_value.blob.return_value
    blob.generate_signed_url.return_value = "https://storage.test/signed"
    gcs = GcsObjectStorage(_gcs_settings())

    url = await gcs.signed_read_url(BucketObject(bucket="b1", key="plan.dwg"))
    output = await gcs.output_argument(BucketObject(bucket="b1", key="out.dwg"), "out.dwg")

  assert url == "https://storage.test/signed"
  assert output.verb == "put"
  assert output.local_name == "out.dwg"
  methods = [call.kwargs["method"] for call in blob.generate_signed_url.call_args_list]
  assert methods == ["GET", "PUT"]
  assert all(call.kwargs["version"] == "v4" for call in blob.generate_signed_url.call_args_list)


@pytest.mark.anyio
async def test_gcs_emulator_cannot_sign(monkeypatch: pytest.MonkeyPatch) -> None:
  # Restored after the test; the backend exports the emulator host for the SDK.
  monkeypatch.setenv("STORAGE_EMULATOR_HOST", "unset")
  with patch("xrefgen.xref.storage.storage.Client"):
    gcs = GcsObjectStorage(_gcs_settings(gcs_storage_host="http://localhost:4443/storage/v1/"))

    with pytest.raises(StorageIOError):
      await gcs.signed_read_url(BucketObject(bucket="b1", key="plan.dwg"))


def test_gcs_resolves_gs_uris_and_plain_keys() -> None:
  with patch("xrefgen.xref.storage.storage.Client"):
    gcs = GcsObjectStorage(_gcs_settings())

  assert gcs.resolve_reference("gs://b2/plans/f1.dwg", "b1") == BucketObject(bucket="b2", key="plans/f1.dwg")
  assert gcs.resolve_reference("/plans/f1.dwg", "b1") == BucketObject(bucket="b1", key="plans/f1.dwg")
  with pytest.raises(StorageIOError):
    gcs.resolve_reference("gs://b2", "b1")


def test_factory_selects_backend_by_provider(static_auth) -> None:
  http = httpx.AsyncClient()
  oss = build_object_storage(SimpleNamespace(storage_provider="oss", aps_oss_base_url=OSS_URL, aps_oss_region="EMEA", signed_url_minutes=60), http, static_auth)
  assert isinstance(oss, OssObjectStorage)

  with patch("xrefgen.xref.storage.storage.Client"):
    assert isinstance(build_object_storage(_gcs_settings(), http, static_auth), GcsObjectStorage)
