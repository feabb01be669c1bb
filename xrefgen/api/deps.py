from __future__ import annotations

import logging

from fastapi import Depends, HTTPException, Request, status

from xrefgen.config import Settings, get_settings
from xrefgen.core.database import get_session_factory
from xrefgen.jobs.progress import GenerationJobStore
from xrefgen.xref.data_service import PlacementDataReader
from xrefgen.xref.factory import build_xref_generator_service
from xrefgen.xref.orchestrator import XrefGeneratorService

logger = logging.getLogger(__name__)


def get_job_store(request: Request) -> GenerationJobStore:
  """Return the process-wide job store created at startup."""
  return request.app.state.job_store


def get_placement_reader(settings: Settings = Depends(get_settings)) -> PlacementDataReader:  # noqa: B008
  session_factory = get_session_factory()
  if session_factory is None or not settings.symbol_public_base_url:
    raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="XREF generation is not configured.")
  return PlacementDataReader(session_factory, hub_path=settings.symbol_hub_path, public_base_url=settings.symbol_public_base_url, symbol_bucket=settings.symbol_bucket)


def get_generator_service(request: Request, settings: Settings = Depends(get_settings)) -> XrefGeneratorService:  # noqa: B008
  """Build the generator around the shared HTTP client and APS token cache."""
  session_factory = get_session_factory()
  if session_factory is None:
    raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="XREF generation is not configured.")
  try:
    return build_xref_generator_service(settings, request.app.state.http_client, session_factory, auth=request.app.state.aps_auth)
  except RuntimeError as exc:
    logger.error("XREF generator unavailable: %s", exc)
    raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="XREF generation is not configured.") from exc
