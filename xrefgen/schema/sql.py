"""Read-only mappings of the project and catalog tables the generator reads.

The tables are owned and migrated by the main application; only the columns
used here are mapped.
"""

from __future__ import annotations

from sqlalchemy import Boolean, Float, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from xrefgen.core.database import Base


class Project(Base):
  __tablename__ = "projects"
  __table_args__ = {"schema": "projects"}

  id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True)
  project_code: Mapped[str] = mapped_column(String, nullable=False)
  oss_bucket: Mapped[str | None] = mapped_column(String, nullable=True)


class ProjectArea(Base):
  __tablename__ = "project_areas"
  __table_args__ = {"schema": "projects"}

  id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True)
  project_id: Mapped[str] = mapped_column(ForeignKey("projects.projects.id"), nullable=False)
  area_code: Mapped[str] = mapped_column(String, nullable=False)


class ProjectAreaRevision(Base):
  __tablename__ = "project_area_revisions"
  __table_args__ = {"schema": "projects"}

  id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True)
  area_id: Mapped[str] = mapped_column(ForeignKey("projects.project_areas.id"), nullable=False)
  revision_number: Mapped[int] = mapped_column(Integer, nullable=False)
  floor_plan_urn: Mapped[str | None] = mapped_column(Text, nullable=True)
  floor_plan_filename: Mapped[str | None] = mapped_column(String, nullable=True)
  google_drive_folder_id: Mapped[str | None] = mapped_column(String, nullable=True)


class PlannerPlacement(Base):
  __tablename__ = "planner_placements"
  __table_args__ = {"schema": "projects"}

  id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True)
  area_version_id: Mapped[str] = mapped_column(ForeignKey("projects.project_area_revisions.id"), index=True, nullable=False)
  project_product_id: Mapped[str] = mapped_column(Uuid(as_uuid=False), nullable=False)
  product_id: Mapped[str] = mapped_column(Uuid(as_uuid=False), nullable=False)
  world_x: Mapped[float] = mapped_column(Float, nullable=False)
  world_y: Mapped[float] = mapped_column(Float, nullable=False)
  rotation: Mapped[float | None] = mapped_column(Float, nullable=True)
  mirror_x: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
  mirror_y: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
  symbol: Mapped[str | None] = mapped_column(String, nullable=True)


class ProductInfo(Base):
  __tablename__ = "product_info"
  __table_args__ = {"schema": "items"}

  product_id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True)
  foss_pid: Mapped[str | None] = mapped_column(String, nullable=True)


class ProductSymbol(Base):
  __tablename__ = "product_symbols"
  __table_args__ = {"schema": "items"}

  foss_pid: Mapped[str] = mapped_column(String, primary_key=True)
  dwg_path: Mapped[str | None] = mapped_column(String, nullable=True)
