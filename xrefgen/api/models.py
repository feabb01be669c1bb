from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, StrictStr


class GenerateCaseStudyRequest(BaseModel):
  """Request payload to start a case-study DWG generation."""

  area_revision_id: StrictStr = Field(min_length=1, description="Area revision whose placements are drawn.", examples=["5f0c1d2e-8a7b-4c3d-9e1f-2a3b4c5d6e7f"])
  model_config = ConfigDict(extra="forbid")


class GenerateCaseStudyResponse(BaseModel):
  """Returned immediately; progress is read from the job endpoints."""

  job_id: str
  message: str = "Generation started"
  area_code: str
  revision_number: int


class ProgressMessageModel(BaseModel):
  timestamp: float
  elapsed: str
  phase: str
  message: str
  detail: str | None = None
  result: dict[str, Any] | None = None


class GenerationJobResponse(BaseModel):
  """Snapshot of a generation job."""

  job_id: str
  name: str
  status: Literal["running", "complete", "error"]
  messages: list[ProgressMessageModel]
  result: dict[str, Any] | None = None
  output_filename: str | None = None
