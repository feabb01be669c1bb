from __future__ import annotations

import json
import os
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

# Ensure required settings are available before importing the app.
os.environ["XREF_ALLOWED_ORIGINS"] = "http://localhost"

from xrefgen.api.deps import get_generator_service, get_job_store, get_placement_reader  # noqa: E402
from xrefgen.api.routes.case_study import stream_generation_events  # noqa: E402
from xrefgen.jobs.progress import GenerationJobStore  # noqa: E402
from xrefgen.main import app  # noqa: E402
from xrefgen.xref.data_service import PlacementDataReader  # noqa: E402
from xrefgen.xref.errors import ResourceNotFoundError  # noqa: E402
from xrefgen.xref.models import GenerateXrefRequest, GenerationContext, GenerationResult  # noqa: E402


def _context(**overrides: object) -> GenerationContext:
  values = {
    "area_revision_id": "rev-1",
    "revision_number": 3,
    "area_code": "F1",
    "project_id": "proj-1",
    "project_code": "2512_001",
    "bucket_name": "bucket-a",
    "floor_plan_urn": "urn:adsk.objects:os.object:bucket-a/floor.dwg",
    "drive_folder_id": "drive-folder",
  }
  values.update(overrides)
  return GenerationContext(**values)


class FakeReader:
  def __init__(self, context: GenerationContext | None) -> None:
    self.context = context

  async def fetch_generation_context(self, area_revision_id: str) -> GenerationContext:
    if self.context is None:
      raise ResourceNotFoundError(f"Area revision not found: {area_revision_id}")
    return self.context


class FakeService:
  def __init__(self, result: GenerationResult) -> None:
    self.result = result
    self.requests: list[GenerateXrefRequest] = []

  async def generate(self, request: GenerateXrefRequest, on_progress=None) -> GenerationResult:
    self.requests.append(request)
    on_progress("init", "Fetching placements...", f"Area: {request.area_code}")
    return self.result


@pytest.fixture
def store() -> GenerationJobStore:
  return GenerationJobStore()


@pytest.fixture
def client(store: GenerationJobStore):
  app.dependency_overrides[get_job_store] = lambda: store
  yield TestClient(app)
  app.dependency_overrides.clear()


def _use(reader: FakeReader, service: FakeService) -> None:
  app.dependency_overrides[get_placement_reader] = lambda: reader
  app.dependency_overrides[get_generator_service] = lambda: service


def test_generation_job_completes_and_serves_download(client: TestClient) -> None:
  service = FakeService(GenerationResult(success=True, output_bytes=b"DWG", output_filename="2512_001_F1_RV3.dwg", long_term_link="https://drive.test/f", missing_symbol_product_ids=("B",)))
  _use(FakeReader(_context()), service)

  response = client.post("/v1/case-study/generate", json={"area_revision_id": "rev-1"})

  assert response.status_code == 200
  body = response.json()
  assert body["area_code"] == "F1"
  assert body["revision_number"] == 3
  job_id = body["job_id"]

  [request] = service.requests
  assert request.output_filename == "2512_001_F1_RV3.dwg"
  assert request.long_term_destination.folder_id == "drive-folder"

  job = client.get(f"/v1/case-study/jobs/{job_id}").json()
  assert job["status"] == "complete"
  assert job["result"]["success"] is True
  assert job["result"]["missing_symbols"] == ["B"]
  assert job["result"]["drive_link"] == "https://drive.test/f"
  assert [message["phase"] for message in job["messages"]][:2] == ["init", "init"]

  download = client.get(f"/v1/case-study/jobs/{job_id}/download")
  assert download.status_code == 200
  assert download.content == b"DWG"
  assert download.headers["content-disposition"] == 'attachment; filename="2512_001_F1_RV3.dwg"'


def test_event_stream_replays_finished_job(client: TestClient) -> None:
  _use(FakeReader(_context()), FakeService(GenerationResult(success=False, output_filename="2512_001_F1_RV3.dwg", errors=("WorkItem timeout",), error_codes=("timeout",))))
  job_id = client.post("/v1/case-study/generate", json={"area_revision_id": "rev-1"}).json()["job_id"]

  response = client.get(f"/v1/case-study/jobs/{job_id}/events")

  assert response.headers["content-type"].startswith("text/event-stream")
  events = [json.loads(line[len("data: ") :]) for line in response.text.splitlines() if line.startswith("data: ")]
  assert events[-1]["phase"] == "error"
  assert events[-1]["result"]["error_codes"] == ["timeout"]
  assert events[-1]["result"]["has_output"] is False

  assert client.get(f"/v1/case-study/jobs/{job_id}/download").status_code == 404


@pytest.mark.parametrize(("overrides", "detail"), [({"floor_plan_urn": None}, "No floor plan uploaded for this area revision"), ({"bucket_name": None}, "Project OSS bucket not configured")])
def test_missing_prerequisites_are_rejected(client: TestClient, overrides: dict, detail: str) -> None:
  service = FakeService(GenerationResult(success=True))
  _use(FakeReader(_context(**overrides)), service)

  response = client.post("/v1/case-study/generate", json={"area_revision_id": "rev-1"})

  assert response.status_code == 400
  assert response.json() == {"detail": detail}
  assert service.requests == []


def test_unknown_revision_returns_not_found(client: TestClient) -> None:
  _use(FakeReader(None), FakeService(GenerationResult(success=True)))

  response = client.post("/v1/case-study/generate", json={"area_revision_id": "missing"})

  assert response.status_code == 404
  assert response.json()["code"] == "not_found"


def test_request_body_rejects_unknown_fields(client: TestClient) -> None:
  _use(FakeReader(_context()), FakeService(GenerationResult(success=True)))

  response = client.post("/v1/case-study/generate", json={"area_revision_id": "rev-1", "force": True})

  assert response.status_code == 422
  assert all("input" not in error for error in response.json()["detail"])


def test_unknown_job_returns_not_found(client: TestClient) -> None:
  assert client.get("/v1/case-study/jobs/nope").status_code == 404
  assert client.get("/v1/case-study/jobs/nope/events").status_code == 404


@pytest.mark.anyio
async def test_event_stream_delivers_completion_that_lands_before_streaming_starts() -> None:
  store = GenerationJobStore()
  store.create_job("job-1", "XREF: F1 v3")
  store.add_progress("job-1", "init", "Starting XREF generation")

  response = await stream_generation_events("job-1", store)
  # The job finishes after the response is built but before the client reads it.
  store.complete_job("job-1", True, {"output_filename": "2512_001_F1_RV3.dwg"}, output_bytes=b"DWG", output_filename="2512_001_F1_RV3.dwg")

  chunks = [chunk async for chunk in response.body_iterator]

  events = [json.loads(chunk[len("data: ") :]) for chunk in chunks]
  assert [event["phase"] for event in events] == ["init", "complete"]
  assert events[-1]["result"]["success"] is True
  assert events[-1]["result"]["has_output"] is True


def test_malformed_revision_id_returns_not_found(client: TestClient) -> None:
  session_factory = MagicMock()
  _use(PlacementDataReader(session_factory, hub_path="F:/HUB", public_base_url="https://x.supabase.co"), FakeService(GenerationResult(success=True)))

  response = client.post("/v1/case-study/generate", json={"area_revision_id": "not-a-uuid"})

  assert response.status_code == 404
  assert response.json()["code"] == "not_found"
  session_factory.assert_not_called()
