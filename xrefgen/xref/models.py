"""Domain models for case-study XREF DWG generation."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Literal

PLACEHOLDER_PRODUCT_ID = "PLACEHOLDER"
PLACEHOLDER_LOCAL_NAME = "PLACEHOLDER-SYMBOL.dwg"
OUTPUT_EXTENSION = "dwg"

ProgressCallback = Callable[[str, str, str | None], None]
ArgumentVerb = Literal["get", "put"]


def get_filename(path: str) -> str:
  """Return the filename part of a Windows or POSIX style path."""
  return path.replace("\\", "/").split("/")[-1]


def build_output_filename(project_code: str, area_code: str, revision_number: int, extension: str = OUTPUT_EXTENSION) -> str:
  """Return the `{project}_{area}_RV{n}.{ext}` name downstream consumers parse."""
  return f"{project_code}_{area_code}_RV{revision_number}.{extension}"


@dataclass(frozen=True)
class Placement:
  """One product instance positioned on an area revision's floor plan."""

  id: str
  project_product_id: str
  product_id: str
  world_x: float
  world_y: float
  rotation: float = 0.0
  mirror_x: bool = False
  mirror_y: bool = False
  symbol: str | None = None
  foss_pid: str | None = None


@dataclass(frozen=True)
class FloorPlanReference:
  """Storage identifier and original filename of a revision's base drawing."""

  urn: str | None
  filename: str | None


@dataclass(frozen=True)
class PlacementSet:
  """Placements for one area revision plus its floor-plan reference."""

  placements: list[Placement]
  floor_plan: FloorPlanReference


@dataclass(frozen=True)
class GenerationContext:
  """Project and area metadata needed to build a generation request."""

  area_revision_id: str
  revision_number: int
  area_code: str
  project_id: str
  project_code: str
  bucket_name: str | None
  floor_plan_urn: str | None
  drive_folder_id: str | None


@dataclass(frozen=True)
class SymbolResource:
  """Plan-view symbol drawing for one product, or a marker that none exists."""

  foss_pid: str
  local_path: str
  public_url: str | None
  has_drawing: bool

  @property
  def local_name(self) -> str:
    return get_filename(self.local_path)


@dataclass(frozen=True)
class XrefPlacement:
  """A placement resolved to the symbol path the remote script attaches."""

  foss_pid: str
  local_path: str
  world_x: float
  world_y: float
  rotation: float = 0.0
  mirror_x: bool = False
  mirror_y: bool = False
  symbol: str | None = None


@dataclass(frozen=True)
class BucketObject:
  """An object in the project-scoped primary bucket."""

  bucket: str
  key: str


@dataclass(frozen=True)
class PublicUrl:
  """A long-lived public URL in secondary storage."""

  url: str


@dataclass(frozen=True)
class DriveFolder:
  """A long-term storage folder handle."""

  folder_id: str


StorageLocation = BucketObject | PublicUrl | DriveFolder


@dataclass(frozen=True)
class WorkItemArgument:
  """One argument binding submitted with a work item."""

  url: str
  verb: ArgumentVerb = "get"
  local_name: str | None = None
  headers: dict[str, str] | None = field(default=None, hash=False)

  def to_payload(self) -> dict[str, object]:
    """Serialize to the JSON shape the remote engine expects."""
    payload: dict[str, object] = {"url": self.url, "verb": self.verb}
    if self.local_name:
      payload["localName"] = self.local_name
    if self.headers:
      payload["headers"] = dict(self.headers)
    return payload


@dataclass(frozen=True)
class WorkItemOutcome:
  """Terminal state of a successful work item."""

  workitem_id: str
  status: str
  report: str | None
  elapsed_seconds: int


@dataclass(frozen=True)
class GenerateXrefRequest:
  """Input for one XREF DWG generation run."""

  area_revision_id: str
  project_id: str
  project_code: str
  area_code: str
  revision_number: int
  bucket_name: str
  floor_plan_reference: str
  long_term_destination: DriveFolder | None = None

  @property
  def output_filename(self) -> str:
    return build_output_filename(self.project_code, self.area_code, self.revision_number)


@dataclass(frozen=True)
class GenerationResult:
  """Outcome of a generation run; exactly one per invocation."""

  success: bool
  output_bytes: bytes | None = None
  output_filename: str | None = None
  long_term_link: str | None = None
  missing_symbol_product_ids: tuple[str, ...] = ()
  errors: tuple[str, ...] = ()
  error_codes: tuple[str, ...] = ()
