import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from urllib.parse import urlparse

import httpx
from fastapi import FastAPI

from xrefgen.config import get_settings
from xrefgen.core.database import dispose_engine
from xrefgen.core.logging import initialize_logging
from xrefgen.jobs.progress import GenerationJobStore
from xrefgen.xref.auth import ApsAuthClient

HTTP_TIMEOUT = httpx.Timeout(60.0, connect=10.0)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Set up logging and the shared clients, and close them on shutdown."""
  settings = get_settings()
  logger = logging.getLogger("xrefgen.core.lifespan")

  try:
    initialize_logging(settings)
    logger.info("Startup complete - logging verified.")
  except RuntimeError:
    # Fall back to stdout logging rather than refusing to start.
    logger.warning("Logging setup failed; continuing with default handlers.", exc_info=True)

  logger.info("Database DSN=%s storage=%s activity_per_run=%s", _redact_dsn(settings.pg_dsn), settings.storage_provider, settings.activity_per_run)
  if not settings.aps_client_id or not settings.aps_client_secret:
    logger.warning("APS credentials are not configured; generation requests will fail at authentication.")

  http_client = httpx.AsyncClient(timeout=HTTP_TIMEOUT, trust_env=False)
  app.state.http_client = http_client
  app.state.aps_auth = ApsAuthClient.from_settings(http_client, settings)
  app.state.job_store = GenerationJobStore(ttl_seconds=settings.job_ttl_seconds)

  try:
    yield
  finally:
    await http_client.aclose()
    await dispose_engine()


def _redact_dsn(raw: str | None) -> str:
  """Redact credentials from a DSN while keeping host/db visible."""
  if not raw:
    return "<unset>"

  parsed = urlparse(raw)
  if not parsed.scheme:
    return "<invalid>"

  user = parsed.username or ""
  host = parsed.hostname or ""
  port = f":{parsed.port}" if parsed.port else ""
  netloc = f"{user}@{host}{port}" if user else f"{host}{port}"
  database = parsed.path.lstrip("/")
  path = f"/{database}" if database else ""
  return f"{parsed.scheme}://{netloc}{path}"
