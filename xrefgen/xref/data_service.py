"""Placement and symbol lookups for one area revision."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from xrefgen.schema.sql import PlannerPlacement, ProductInfo, ProductSymbol, Project, ProjectArea, ProjectAreaRevision
from xrefgen.xref.errors import ResourceNotFoundError
from xrefgen.xref.models import PLACEHOLDER_PRODUCT_ID, FloorPlanReference, GenerationContext, Placement, PlacementSet, SymbolResource, XrefPlacement

logger = logging.getLogger(__name__)


def symbol_local_path(hub_path: str, foss_pid: str) -> str:
  """Return the synced Drive hub path a designer's machine resolves the symbol from."""
  return f"{hub_path}/RESOURCES/SYMBOLS/{foss_pid}/{foss_pid}-SYMBOL.dwg".replace("\\", "/")


def symbol_public_url(base_url: str, bucket: str, dwg_path: str) -> str:
  return f"{base_url.rstrip('/')}/storage/v1/object/public/{bucket}/{dwg_path.lstrip('/')}"


def _require_revision_id(area_revision_id: str) -> str:
  """Return the canonical UUID text; anything else cannot match a revision row."""
  try:
    return str(uuid.UUID(area_revision_id))
  except (TypeError, ValueError) as exc:
    raise ResourceNotFoundError(f"Area revision not found: {area_revision_id}") from exc


def build_xref_placements(placements: Sequence[Placement], symbols: Sequence[SymbolResource], placeholder_path: str) -> list[XrefPlacement]:
  """Resolve each placement to the symbol path its attach command uses.

  Placements without a product identity are skipped; products without a stored
  drawing point at the placeholder instead.
  """
  by_pid = {symbol.foss_pid: symbol for symbol in symbols}
  result: list[XrefPlacement] = []
  for placement in placements:
    if not placement.foss_pid:
      continue
    symbol = by_pid.get(placement.foss_pid)
    local_path = symbol.local_path if symbol is not None and symbol.has_drawing else placeholder_path
    result.append(
      XrefPlacement(
        foss_pid=placement.foss_pid,
        local_path=local_path,
        world_x=placement.world_x,
        world_y=placement.world_y,
        rotation=placement.rotation,
        mirror_x=placement.mirror_x,
        mirror_y=placement.mirror_y,
        symbol=placement.symbol,
      )
    )
  return result


class PlacementDataReader:
  """Reads placements, symbols and project metadata from the relational store."""

  def __init__(self, session_factory: async_sessionmaker[AsyncSession], *, hub_path: str, public_base_url: str, symbol_bucket: str = "product-symbols") -> None:
    self._session_factory = session_factory
    self._hub_path = hub_path
    self._public_base_url = public_base_url
    self._symbol_bucket = symbol_bucket

  @property
  def placeholder_local_path(self) -> str:
    return symbol_local_path(self._hub_path, PLACEHOLDER_PRODUCT_ID)

  async def fetch_placements(self, area_revision_id: str) -> PlacementSet:
    area_revision_id = _require_revision_id(area_revision_id)
    async with self._session_factory() as session:
      revision = await session.get(ProjectAreaRevision, area_revision_id)
      if revision is None:
        raise ResourceNotFoundError(f"Area revision not found: {area_revision_id}")

      stmt = (
        select(PlannerPlacement, ProductInfo.foss_pid)
        .outerjoin(ProductInfo, ProductInfo.product_id == PlannerPlacement.product_id)
        .where(PlannerPlacement.area_version_id == area_revision_id)
        .order_by(PlannerPlacement.id)
      )
      rows = (await session.execute(stmt)).all()

    placements = [
      Placement(
        id=str(row.id),
        project_product_id=str(row.project_product_id),
        product_id=str(row.product_id),
        world_x=float(row.world_x),
        world_y=float(row.world_y),
        rotation=float(row.rotation or 0.0),
        mirror_x=bool(row.mirror_x),
        mirror_y=bool(row.mirror_y),
        symbol=row.symbol,
        foss_pid=foss_pid,
      )
      for row, foss_pid in rows
    ]
    logger.info("Loaded %s placements for area revision %s", len(placements), area_revision_id)
    return PlacementSet(placements=placements, floor_plan=FloorPlanReference(urn=revision.floor_plan_urn, filename=revision.floor_plan_filename))

  async def resolve_symbols(self, placements: Sequence[Placement]) -> list[SymbolResource]:
    """Return one resource per distinct product, in first-seen order."""
    foss_pids = list(dict.fromkeys(placement.foss_pid for placement in placements if placement.foss_pid))
    if not foss_pids:
      return []

    dwg_paths: dict[str, str] = {}
    try:
      async with self._session_factory() as session:
        rows = (await session.execute(select(ProductSymbol.foss_pid, ProductSymbol.dwg_path).where(ProductSymbol.foss_pid.in_(foss_pids)))).all()
      dwg_paths = {pid: path for pid, path in rows if path}
    except SQLAlchemyError as exc:
      # Every product falls back to the placeholder rather than dropping placements.
      logger.warning("Failed to fetch symbol info, using placeholders: %s", exc)

    symbols = []
    for pid in foss_pids:
      dwg_path = dwg_paths.get(pid)
      symbols.append(
        SymbolResource(
          foss_pid=pid,
          local_path=symbol_local_path(self._hub_path, pid),
          public_url=symbol_public_url(self._public_base_url, self._symbol_bucket, dwg_path) if dwg_path else None,
          has_drawing=dwg_path is not None,
        )
      )
    return symbols

  async def fetch_generation_context(self, area_revision_id: str) -> GenerationContext:
    """Resolve the revision together with its area and project."""
    area_revision_id = _require_revision_id(area_revision_id)
    stmt = (
      select(ProjectAreaRevision, ProjectArea.area_code, Project.id, Project.project_code, Project.oss_bucket)
      .join(ProjectArea, ProjectArea.id == ProjectAreaRevision.area_id)
      .join(Project, Project.id == ProjectArea.project_id)
      .where(ProjectAreaRevision.id == area_revision_id)
    )
    async with self._session_factory() as session:
      row = (await session.execute(stmt)).first()

    if row is None:
      raise ResourceNotFoundError(f"Area revision not found: {area_revision_id}")

    revision, area_code, project_id, project_code, bucket = row
    return GenerationContext(
      area_revision_id=str(revision.id),
      revision_number=int(revision.revision_number),
      area_code=area_code,
      project_id=str(project_id),
      project_code=project_code,
      bucket_name=bucket,
      floor_plan_urn=revision.floor_plan_urn,
      drive_folder_id=revision.google_drive_folder_id,
    )
