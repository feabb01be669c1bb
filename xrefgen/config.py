"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

DEFAULT_ALLOWED_ORIGINS = "http://localhost:3000"


@dataclass(frozen=True)
class Settings:
  """Typed settings for the XREF generation service."""

  environment: str
  debug: bool
  allowed_origins: tuple[str, ...]
  log_dir: str
  log_max_bytes: int
  log_backup_count: int
  pg_dsn: str | None
  pg_connect_timeout: int
  aps_client_id: str | None
  aps_client_secret: str | None
  aps_auth_url: str
  aps_da_base_url: str
  aps_oss_base_url: str
  aps_nickname: str
  aps_activity_name: str
  aps_engine_version: str
  aps_activity_alias: str
  aps_oss_region: str
  signed_url_minutes: int
  activity_per_run: bool
  poll_interval_seconds: float
  max_polling_attempts: int
  storage_provider: str
  gcp_project_id: str | None
  gcs_storage_host: str | None
  symbol_public_base_url: str | None
  symbol_bucket: str
  placeholder_symbol_path: str
  symbol_hub_path: str
  dwg_version: str
  drive_service_account_path: str | None
  drive_output_folder_name: str
  job_ttl_seconds: int


@dataclass(frozen=True)
class DatabaseSettings:
  """Typed settings for database connectivity."""

  debug: bool
  pg_dsn: str | None
  pg_connect_timeout: int


def _parse_origins(raw: str | None) -> tuple[str, ...]:
  origins = [origin.strip() for origin in (raw or DEFAULT_ALLOWED_ORIGINS).split(",") if origin.strip()]

  if not origins:
    raise ValueError("XREF_ALLOWED_ORIGINS must include at least one origin.")

  if "*" in origins:
    raise ValueError("XREF_ALLOWED_ORIGINS must not include wildcard origins.")

  return tuple(origins)


def _parse_bool(raw: str | None, *, default: bool = False) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None:
    return default

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _positive_int(name: str, default: str) -> int:
  value = int(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive integer.")
  return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("XREF_ENV", "development").lower()

  # Toggle verbose error output and diagnostics in non-production environments.
  debug = _parse_bool(os.getenv("XREF_DEBUG"))

  log_max_bytes = _positive_int("XREF_LOG_MAX_BYTES", "5242880")  # 5MB default
  log_backup_count = int(os.getenv("XREF_LOG_BACKUP_COUNT", "10"))
  if log_backup_count < 0:
    raise ValueError("XREF_LOG_BACKUP_COUNT must be zero or a positive integer.")

  signed_url_minutes = _positive_int("XREF_SIGNED_URL_MINUTES", "60")
  max_polling_attempts = _positive_int("XREF_MAX_POLLING_ATTEMPTS", "300")  # 10 min at 2-second intervals
  job_ttl_seconds = _positive_int("XREF_JOB_TTL_SECONDS", "300")

  poll_interval_seconds = float(os.getenv("XREF_POLL_INTERVAL_SECONDS", "2.0"))
  if poll_interval_seconds < 0:
    raise ValueError("XREF_POLL_INTERVAL_SECONDS must not be negative.")

  storage_provider = (os.getenv("XREF_STORAGE_PROVIDER") or "oss").strip().lower()
  if storage_provider not in {"oss", "gcs"}:
    raise ValueError("XREF_STORAGE_PROVIDER must be 'oss' or 'gcs'.")

  # Fall back to the shared Supabase URL so symbol links match the catalog.
  symbol_public_base_url = _optional_str(os.getenv("XREF_SYMBOL_PUBLIC_BASE_URL")) or _optional_str(os.getenv("SUPABASE_URL"))

  return Settings(
    environment=environment,
    debug=debug,
    allowed_origins=_parse_origins(os.getenv("XREF_ALLOWED_ORIGINS")),
    log_dir=(os.getenv("XREF_LOG_DIR") or "./logs").strip(),
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    pg_dsn=os.getenv("XREF_PG_DSN") or os.getenv("DATABASE_URL"),
    pg_connect_timeout=_positive_int("XREF_PG_CONNECT_TIMEOUT", "5"),
    aps_client_id=_optional_str(os.getenv("APS_CLIENT_ID")),
    aps_client_secret=_optional_str(os.getenv("APS_CLIENT_SECRET")),
    aps_auth_url=(os.getenv("APS_AUTH_URL") or "https://developer.api.autodesk.com/authentication/v2/token").strip(),
    aps_da_base_url=(os.getenv("APS_DA_BASE_URL") or "https://developer.api.autodesk.com/da/us-east/v3").strip().rstrip("/"),
    aps_oss_base_url=(os.getenv("APS_OSS_BASE_URL") or "https://developer.api.autodesk.com/oss/v2").strip().rstrip("/"),
    aps_nickname=(os.getenv("APS_NICKNAME") or "fossapp").strip(),
    aps_activity_name=(os.getenv("XREF_ACTIVITY_NAME") or "fossappXrefAct").strip(),
    aps_engine_version=(os.getenv("XREF_ENGINE_VERSION") or "Autodesk.AutoCAD+25_1").strip(),
    aps_activity_alias=(os.getenv("XREF_ACTIVITY_ALIAS") or "production").strip(),
    aps_oss_region=(os.getenv("APS_REGION") or "EMEA").strip(),
    signed_url_minutes=signed_url_minutes,
    activity_per_run=_parse_bool(os.getenv("XREF_ACTIVITY_PER_RUN"), default=True),
    poll_interval_seconds=poll_interval_seconds,
    max_polling_attempts=max_polling_attempts,
    storage_provider=storage_provider,
    gcp_project_id=_optional_str(os.getenv("GCP_PROJECT_ID")),
    gcs_storage_host=_optional_str(os.getenv("GCS_STORAGE_HOST")),
    symbol_public_base_url=symbol_public_base_url.rstrip("/") if symbol_public_base_url else None,
    symbol_bucket=(os.getenv("XREF_SYMBOL_BUCKET") or "product-symbols").strip(),
    placeholder_symbol_path=(os.getenv("XREF_PLACEHOLDER_SYMBOL_PATH") or "PLACEHOLDER/PLACEHOLDER-SYMBOL.dwg").strip(),
    symbol_hub_path=(os.getenv("GOOGLE_DRIVE_HUB_PATH") or "F:\\Shared drives\\HUB").strip(),
    dwg_version=(os.getenv("XREF_DWG_VERSION") or "2018").strip(),
    drive_service_account_path=_optional_str(os.getenv("GOOGLE_SERVICE_ACCOUNT_PATH")),
    drive_output_folder_name=(os.getenv("XREF_DRIVE_OUTPUT_FOLDER") or "Output").strip(),
    job_ttl_seconds=job_ttl_seconds,
  )


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
  """Load database settings without requiring the rest of the runtime configuration."""
  debug = _parse_bool(os.getenv("XREF_DEBUG"))
  pg_connect_timeout = int(os.getenv("XREF_PG_CONNECT_TIMEOUT", "5"))
  if pg_connect_timeout <= 0:
    raise ValueError("XREF_PG_CONNECT_TIMEOUT must be a positive integer.")

  # Support fallback to DATABASE_URL so Supabase-style env files work unchanged.
  pg_dsn = os.getenv("XREF_PG_DSN") or os.getenv("DATABASE_URL")

  return DatabaseSettings(debug=debug, pg_dsn=pg_dsn, pg_connect_timeout=pg_connect_timeout)


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  if value == "":
    return None
  return value
