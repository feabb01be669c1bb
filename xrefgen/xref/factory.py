from __future__ import annotations

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from xrefgen.config import Settings
from xrefgen.xref.activity import ActivityManager
from xrefgen.xref.auth import ApsAuthClient
from xrefgen.xref.data_service import PlacementDataReader, symbol_public_url
from xrefgen.xref.drive import DriveUploader, ServiceAccountTokenProvider
from xrefgen.xref.materializer import ResultMaterializer
from xrefgen.xref.orchestrator import XrefGeneratorService
from xrefgen.xref.staging import StagingLayer
from xrefgen.xref.storage import build_object_storage
from xrefgen.xref.workitems import WorkItemMonitor


def build_drive_uploader(settings: Settings, http: httpx.AsyncClient) -> DriveUploader | None:
  """Return a Drive uploader, or None when no service account is configured."""
  if not settings.drive_service_account_path:
    return None
  return DriveUploader(http, ServiceAccountTokenProvider(settings.drive_service_account_path), output_folder_name=settings.drive_output_folder_name)


def build_xref_generator_service(settings: Settings, http: httpx.AsyncClient, session_factory: async_sessionmaker[AsyncSession], *, auth: ApsAuthClient | None = None) -> XrefGeneratorService:
  """Factory to wire the generator from settings around one shared HTTP client."""
  if not settings.symbol_public_base_url:
    raise RuntimeError("XREF_SYMBOL_PUBLIC_BASE_URL (or SUPABASE_URL) must be configured for XREF generation.")

  auth = auth or ApsAuthClient.from_settings(http, settings)
  storage = build_object_storage(settings, http, auth)
  placeholder_url = symbol_public_url(settings.symbol_public_base_url, settings.symbol_bucket, settings.placeholder_symbol_path)

  return XrefGeneratorService(
    reader=PlacementDataReader(session_factory, hub_path=settings.symbol_hub_path, public_base_url=settings.symbol_public_base_url, symbol_bucket=settings.symbol_bucket),
    auth=auth,
    activities=ActivityManager(http, auth, base_url=settings.aps_da_base_url, nickname=settings.aps_nickname, engine_version=settings.aps_engine_version, alias=settings.aps_activity_alias),
    storage=storage,
    staging=StagingLayer(storage, placeholder_url=placeholder_url),
    monitor=WorkItemMonitor(http, auth, base_url=settings.aps_da_base_url, poll_interval_seconds=settings.poll_interval_seconds, max_polling_attempts=settings.max_polling_attempts),
    materializer=ResultMaterializer(http, storage, build_drive_uploader(settings, http)),
    activity_name=settings.aps_activity_name,
    activity_per_run=settings.activity_per_run,
    dwg_version=settings.dwg_version,
  )
