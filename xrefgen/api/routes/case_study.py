import json
import logging
from collections.abc import AsyncIterator

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Response, status
from fastapi.responses import StreamingResponse

from xrefgen.api.deps import get_generator_service, get_job_store, get_placement_reader
from xrefgen.api.models import GenerateCaseStudyRequest, GenerateCaseStudyResponse, GenerationJobResponse, ProgressMessageModel
from xrefgen.jobs.progress import GenerationJob, GenerationJobStore, ProgressMessage
from xrefgen.utils.ids import generate_job_id
from xrefgen.xref.data_service import PlacementDataReader
from xrefgen.xref.models import DriveFolder, GenerateXrefRequest
from xrefgen.xref.orchestrator import XrefGeneratorService

router = APIRouter()
logger = logging.getLogger("xrefgen.api.routes.case_study")

TERMINAL_PHASES = frozenset({"complete", "error"})
DWG_MEDIA_TYPE = "application/acad"


async def run_generation_job(job_id: str, request: GenerateXrefRequest, service: XrefGeneratorService, store: GenerationJobStore) -> None:
  """Run one generation and push every progress event into the job store."""
  store.add_progress(job_id, "init", "Starting XREF generation", f"Area: {request.area_code} v{request.revision_number}")

  def on_progress(phase: str, message: str, detail: str | None = None) -> None:
    store.add_progress(job_id, phase, message, detail)

  try:
    result = await service.generate(request, on_progress)
  except Exception as exc:
    logger.error("Background generation failed for job %s", job_id, exc_info=True)
    store.add_progress(job_id, "error", "Generation failed", str(exc))
    store.complete_job(job_id, False, {"errors": [str(exc)]})
    return

  summary = {"output_filename": result.output_filename, "missing_symbols": list(result.missing_symbol_product_ids), "drive_link": result.long_term_link}
  if result.success and result.output_bytes is not None:
    store.add_progress(job_id, "complete", "Generation complete", result.output_filename)
    store.complete_job(job_id, True, summary, output_bytes=result.output_bytes, output_filename=result.output_filename)
  else:
    store.add_progress(job_id, "error", "Generation failed", ", ".join(result.errors))
    store.complete_job(job_id, False, {**summary, "errors": list(result.errors), "error_codes": list(result.error_codes)})


def _require_job(store: GenerationJobStore, job_id: str) -> GenerationJob:
  job = store.get_job(job_id)
  if job is None:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
  return job


def _sse(message: ProgressMessage) -> str:
  return f"data: {json.dumps(message.to_dict())}\n\n"


@router.post("/generate", response_model=GenerateCaseStudyResponse)
async def generate_case_study(  # noqa: B008
  payload: GenerateCaseStudyRequest,
  background_tasks: BackgroundTasks,
  reader: PlacementDataReader = Depends(get_placement_reader),  # noqa: B008
  service: XrefGeneratorService = Depends(get_generator_service),  # noqa: B008
  store: GenerationJobStore = Depends(get_job_store),  # noqa: B008
) -> GenerateCaseStudyResponse:
  """Start an XREF DWG generation for an area revision and return its job id."""
  context = await reader.fetch_generation_context(payload.area_revision_id)

  if not context.floor_plan_urn:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No floor plan uploaded for this area revision")
  if not context.bucket_name:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Project OSS bucket not configured")

  request = GenerateXrefRequest(
    area_revision_id=context.area_revision_id,
    project_id=context.project_id,
    project_code=context.project_code,
    area_code=context.area_code,
    revision_number=context.revision_number,
    bucket_name=context.bucket_name,
    floor_plan_reference=context.floor_plan_urn,
    long_term_destination=DriveFolder(context.drive_folder_id) if context.drive_folder_id else None,
  )

  job_id = generate_job_id()
  store.create_job(job_id, f"XREF: {context.area_code} v{context.revision_number}")
  background_tasks.add_task(run_generation_job, job_id, request, service, store)
  logger.info("Queued XREF generation job %s for %s v%s", job_id, context.area_code, context.revision_number)

  return GenerateCaseStudyResponse(job_id=job_id, area_code=context.area_code, revision_number=context.revision_number)


@router.get("/jobs/{job_id}", response_model=GenerationJobResponse)
async def get_generation_job(job_id: str, store: GenerationJobStore = Depends(get_job_store)) -> GenerationJobResponse:  # noqa: B008
  """Return the current status, messages and result of a job."""
  job = _require_job(store, job_id)
  return GenerationJobResponse(
    job_id=job.job_id,
    name=job.name,
    status=job.status,
    messages=[ProgressMessageModel(**message.to_dict()) for message in job.messages],
    result=job.result,
    output_filename=job.output_filename,
  )


@router.get("/jobs/{job_id}/events")
async def stream_generation_events(job_id: str, store: GenerationJobStore = Depends(get_job_store)) -> StreamingResponse:  # noqa: B008
  """Stream progress as Server-Sent Events until the job finishes."""
  job = _require_job(store, job_id)
  # Subscribe before taking the snapshot so no message falls between the two; the status is read
  # with the snapshot because the job may finish before streaming starts.
  queue = store.subscribe(job_id)
  backlog = list(job.messages)
  finished = job.status != "running"

  async def _events() -> AsyncIterator[str]:
    try:
      for message in backlog:
        yield _sse(message)
      if finished or queue is None:
        return
      while True:
        message = await queue.get()
        yield _sse(message)
        if message.result is not None and message.phase in TERMINAL_PHASES:
          return
    finally:
      if queue is not None:
        store.unsubscribe(job_id, queue)

  return StreamingResponse(_events(), media_type="text/event-stream", headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"})


@router.get("/jobs/{job_id}/download")
async def download_generation_output(job_id: str, store: GenerationJobStore = Depends(get_job_store)) -> Response:  # noqa: B008
  """Return the generated drawing while the job is retained."""
  job = _require_job(store, job_id)
  if job.output_bytes is None or not job.output_filename:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No output available for this job")
  return Response(content=job.output_bytes, media_type=DWG_MEDIA_TYPE, headers={"Content-Disposition": f'attachment; filename="{job.output_filename}"'})
