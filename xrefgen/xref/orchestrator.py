"""Top-level XREF DWG generation service.

One call to `XrefGeneratorService.generate` runs the whole pipeline:

  init      load placements, resolve symbols, note the ones that need a placeholder
  script    render the attach script
  aps       authenticate, create the per-run activity, stage inputs, run the work item
  download  fetch the generated drawing
  drive     copy it to the project's Drive folder (optional, never fatal)

Every failure is converted into a failed `GenerationResult` at a single
boundary. The activity delete runs exactly once per call, whatever happened.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from typing import Protocol

from xrefgen.utils.ids import generate_run_id
from xrefgen.xref.activity import ActivityManager
from xrefgen.xref.auth import ApsAuthClient
from xrefgen.xref.data_service import build_xref_placements
from xrefgen.xref.errors import EmptyInputError, RelocationFailedError, XrefError
from xrefgen.xref.materializer import ResultMaterializer
from xrefgen.xref.models import BucketObject, GenerateXrefRequest, GenerationResult, Placement, PlacementSet, ProgressCallback, SymbolResource
from xrefgen.xref.script_generator import ScriptOptions, XrefScriptGenerator
from xrefgen.xref.staging import StagingLayer, scratch_script_object
from xrefgen.xref.storage import ObjectStorage
from xrefgen.xref.workitems import WorkItemMonitor

logger = logging.getLogger(__name__)


class PlacementSource(Protocol):
  """The reads the pipeline needs from the relational store."""

  @property
  def placeholder_local_path(self) -> str: ...

  async def fetch_placements(self, area_revision_id: str) -> PlacementSet: ...

  async def resolve_symbols(self, placements: Sequence[Placement]) -> list[SymbolResource]: ...


def _ignore_progress(phase: str, message: str, detail: str | None = None) -> None:
  return None


class XrefGeneratorService:
  """Generates case-study drawings with product symbols attached as XREFs."""

  def __init__(
    self,
    *,
    reader: PlacementSource,
    auth: ApsAuthClient,
    activities: ActivityManager,
    storage: ObjectStorage,
    staging: StagingLayer,
    monitor: WorkItemMonitor,
    materializer: ResultMaterializer,
    script_generator: XrefScriptGenerator | None = None,
    activity_name: str = "fossappXrefAct",
    activity_per_run: bool = True,
    dwg_version: str = "2018",
    run_id_factory: Callable[[], str] = generate_run_id,
  ) -> None:
    self._reader = reader
    self._auth = auth
    self._activities = activities
    self._storage = storage
    self._staging = staging
    self._monitor = monitor
    self._materializer = materializer
    self._script_generator = script_generator or XrefScriptGenerator()
    self._activity_name = activity_name
    self._activity_per_run = activity_per_run
    self._dwg_version = dwg_version
    self._run_id_factory = run_id_factory

  def activity_id_for(self, run_id: str) -> str:
    if self._activity_per_run:
      return f"{self._activity_name}_{run_id}"
    return self._activity_name

  async def generate(self, request: GenerateXrefRequest, on_progress: ProgressCallback | None = None) -> GenerationResult:
    """Run the pipeline and return exactly one result; never raises for pipeline errors."""
    progress = on_progress or _ignore_progress
    run_id = self._run_id_factory()
    activity_id = self.activity_id_for(run_id)
    output_filename = request.output_filename
    missing: tuple[str, ...] = ()
    scratch: BucketObject | None = None

    logger.info("Starting XREF generation run %s for %s (%s)", run_id, request.area_code, request.area_revision_id)
    try:
      progress("init", "Fetching placements...", f"Area: {request.area_code}")
      placement_set = await self._reader.fetch_placements(request.area_revision_id)
      placements = placement_set.placements
      if not placements:
        raise EmptyInputError("No placements found for this area")
      progress("init", "Placements loaded", f"{len(placements)} placements")

      progress("init", "Checking symbol DWGs...", None)
      symbols = await self._reader.resolve_symbols(placements)
      available = [symbol for symbol in symbols if symbol.has_drawing]
      missing = tuple(symbol.foss_pid for symbol in symbols if not symbol.has_drawing)
      if missing:
        progress("init", "Missing symbols detected", f"{len(missing)} will use placeholder")

      xref_placements = build_xref_placements(placements, symbols, self._reader.placeholder_local_path)

      progress("script", "Generating AutoLISP script...", None)
      options = ScriptOptions(output_filename=output_filename, dwg_version=self._dwg_version, area_code=request.area_code, revision_number=request.revision_number)
      script_text = self._script_generator.generate_script(xref_placements, options)
      progress("script", "Script generated", f"{len(script_text)} bytes")

      progress("aps", "Authenticating with APS...", None)
      await self._auth.get_token()

      progress("aps", "Creating activity...", f"{len(available) + 1} symbol params")
      await self._activities.create(activity_id, available)

      progress("aps", "Staging inputs...", f"script + {len(available)} symbols")
      floor_plan = self._storage.resolve_reference(request.floor_plan_reference, request.bucket_name)
      scratch = scratch_script_object(request.bucket_name, run_id)
      staged = await self._staging.stage(
        run_id=run_id,
        bucket=request.bucket_name,
        floor_plan=floor_plan,
        script_text=script_text,
        symbols=available,
        output_filename=output_filename,
      )

      progress("aps", "Submitting WorkItem...", None)
      workitem_id = await self._monitor.submit(self._activities.qualified_activity_id(activity_id), staged.arguments())

      progress("aps", "Processing...", "This may take 30-60 seconds")
      await self._monitor.wait(workitem_id, progress)

      progress("download", "Downloading generated DWG...", None)
      output_bytes = await self._materializer.download(staged.output_object)
      progress("download", "DWG downloaded", f"{len(output_bytes) // 1024} KB")

      long_term_link = None
      if request.long_term_destination is not None:
        progress("drive", "Uploading to Google Drive...", None)
        try:
          long_term_link = await self._materializer.relocate(request.long_term_destination, output_filename, output_bytes, staged.output_object)
          progress("drive", "Uploaded to Google Drive", output_filename)
        except RelocationFailedError as exc:
          logger.warning("Drive relocation failed for %s: %s", output_filename, exc)
          progress("drive", "Drive upload failed (file still generated)", str(exc))

      logger.info("XREF generation run %s succeeded: %s (%s bytes)", run_id, output_filename, len(output_bytes))
      return GenerationResult(
        success=True,
        output_bytes=output_bytes,
        output_filename=output_filename,
        long_term_link=long_term_link,
        missing_symbol_product_ids=missing,
      )

    except XrefError as exc:
      logger.error("XREF generation run %s failed (%s): %s", run_id, exc.code, exc)
      return GenerationResult(success=False, output_filename=output_filename, missing_symbol_product_ids=missing, errors=(str(exc),), error_codes=(exc.code,))
    except Exception as exc:
      logger.exception("XREF generation run %s failed unexpectedly", run_id)
      return GenerationResult(success=False, output_filename=output_filename, missing_symbol_product_ids=missing, errors=(str(exc) or type(exc).__name__,), error_codes=("internal_error",))

    finally:
      await self._activities.delete(activity_id)
      if scratch is not None:
        await self._remove_scratch(scratch)

  async def _remove_scratch(self, scratch: BucketObject) -> None:
    try:
      await self._storage.delete(scratch)
    except XrefError as exc:
      logger.warning("Could not delete scratch script %s: %s", scratch.key, exc)
