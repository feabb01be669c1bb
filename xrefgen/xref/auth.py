"""Two-legged OAuth token client for Autodesk Platform Services."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable

import httpx

from xrefgen.config import Settings
from xrefgen.xref.errors import ApsAuthError

logger = logging.getLogger(__name__)

APS_SCOPES = "bucket:create bucket:read bucket:delete data:read data:write data:create code:all"
# Refresh this many seconds before the token actually expires.
TOKEN_REFRESH_MARGIN_SECONDS = 300


class ApsAuthClient:
  """Fetches and caches a client-credentials access token."""

  def __init__(self, http: httpx.AsyncClient, *, client_id: str | None, client_secret: str | None, auth_url: str, clock: Callable[[], float] = time.monotonic) -> None:
    self._http = http
    self._client_id = client_id
    self._client_secret = client_secret
    self._auth_url = auth_url
    self._clock = clock
    self._token: str | None = None
    self._expires_at = 0.0
    self._lock = asyncio.Lock()

  @classmethod
  def from_settings(cls, http: httpx.AsyncClient, settings: Settings) -> ApsAuthClient:
    return cls(http, client_id=settings.aps_client_id, client_secret=settings.aps_client_secret, auth_url=settings.aps_auth_url)

  async def get_token(self) -> str:
    """Return a cached token, requesting a new one when it is close to expiry."""
    async with self._lock:
      if self._token and self._clock() < self._expires_at:
        return self._token

      if not self._client_id or not self._client_secret:
        raise ApsAuthError("APS_CLIENT_ID and APS_CLIENT_SECRET must be configured.")

      try:
        response = await self._http.post(
          self._auth_url,
          data={"grant_type": "client_credentials", "scope": APS_SCOPES},
          auth=(self._client_id, self._client_secret),
          headers={"Accept": "application/json"},
        )
      except httpx.RequestError as exc:
        raise ApsAuthError(f"APS token request failed: {exc}") from exc

      if response.status_code != 200:
        raise ApsAuthError(f"APS authentication failed: {response.status_code} {response.text}")

      payload = response.json()
      token = payload.get("access_token")
      if not token:
        raise ApsAuthError("APS authentication response did not include an access token.")

      expires_in = int(payload.get("expires_in", 3600))
      self._token = token
      self._expires_at = self._clock() + max(expires_in - TOKEN_REFRESH_MARGIN_SECONDS, 0)
      logger.info("Obtained APS access token (expires in %ss)", expires_in)
      return token

  def invalidate(self) -> None:
    """Drop the cached token so the next call re-authenticates."""
    self._token = None
    self._expires_at = 0.0
