"""Design Automation activity definitions sized to the symbols of one run."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any
from urllib.parse import quote

import httpx

from xrefgen.xref.auth import ApsAuthClient
from xrefgen.xref.errors import DefinitionConflictError, RemoteEngineError
from xrefgen.xref.models import PLACEHOLDER_LOCAL_NAME, SymbolResource

logger = logging.getLogger(__name__)

COMMAND_LINE = '$(engine.path)\\accoreconsole.exe /i "$(args[inputDwg].path)" /s "$(args[script].path)"'
PLACEHOLDER_SLOT = "symbol_placeholder"


def symbol_slot_names(symbols: Sequence[SymbolResource]) -> list[str]:
  """Return `symbol_{i}` slot names in the order symbols were resolved."""
  return [f"symbol_{index}" for index in range(len(symbols))]


def build_activity_spec(activity_id: str, engine_version: str, symbols: Sequence[SymbolResource]) -> dict[str, Any]:
  """Build the activity payload with fixed slots plus one optional slot per symbol."""
  parameters: dict[str, Any] = {
    "inputDwg": {"verb": "get", "description": "Floor plan DWG to process", "required": True, "localName": "input.dwg"},
    "script": {"verb": "get", "description": "AutoLISP script with XREF commands", "required": True, "localName": "script.scr"},
    "output": {"verb": "put", "description": "Generated DWG with XREFs", "required": True, "localName": "output.dwg"},
  }

  # The engine stores each symbol under its bare filename; the script references the hub path.
  for slot, symbol in zip(symbol_slot_names(symbols), symbols):
    parameters[slot] = {"verb": "get", "description": f"Symbol {symbol.foss_pid}", "required": False, "localName": symbol.local_name}

  parameters[PLACEHOLDER_SLOT] = {"verb": "get", "description": "Placeholder symbol for missing DWGs", "required": False, "localName": PLACEHOLDER_LOCAL_NAME}

  return {
    "id": activity_id,
    "engine": engine_version,
    "commandLine": [COMMAND_LINE],
    "parameters": parameters,
    "description": f"XREF generation activity with {len(symbols)} symbols",
  }


class ActivityManager:
  """Creates, aliases and deletes activities on the remote engine."""

  def __init__(self, http: httpx.AsyncClient, auth: ApsAuthClient, *, base_url: str, nickname: str, engine_version: str, alias: str = "production") -> None:
    self._http = http
    self._auth = auth
    self._base_url = base_url.rstrip("/")
    self._nickname = nickname
    self._engine_version = engine_version
    self._alias = alias

  def qualified_activity_id(self, activity_id: str) -> str:
    return f"{self._nickname}.{activity_id}+{self._alias}"

  async def _headers(self) -> dict[str, str]:
    token = await self._auth.get_token()
    return {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}

  async def _post_activity(self, spec: dict[str, Any]) -> httpx.Response:
    try:
      return await self._http.post(f"{self._base_url}/activities", json=spec, headers=await self._headers())
    except httpx.RequestError as exc:
      raise RemoteEngineError(f"Failed to create activity: {exc}") from exc

  async def create(self, activity_id: str, symbols: Sequence[SymbolResource]) -> int:
    """Create the activity and bind the alias; returns the created version.

    A 409 means a definition with the same id is left over from an earlier run.
    It is deleted and the create retried exactly once.
    """
    spec = build_activity_spec(activity_id, self._engine_version, symbols)
    response = await self._post_activity(spec)

    if response.status_code == 409:
      logger.warning("Activity %s already exists; deleting and recreating", activity_id)
      await self._delete_existing(activity_id)
      response = await self._post_activity(spec)
      if response.status_code == 409:
        raise DefinitionConflictError(f"Activity {activity_id} still conflicts after delete: {response.text}")

    if not response.is_success:
      raise RemoteEngineError(f"Failed to create activity: {response.status_code} {response.text}")

    version = _response_version(response)
    await self._bind_alias(activity_id, version)
    logger.info("Created activity %s (version %s, %s symbol slots)", activity_id, version, len(symbols))
    return version

  async def _bind_alias(self, activity_id: str, version: int) -> None:
    url = f"{self._base_url}/activities/{quote(activity_id, safe='')}/aliases"
    try:
      response = await self._http.post(url, json={"id": self._alias, "version": version}, headers=await self._headers())
    except httpx.RequestError as exc:
      raise RemoteEngineError(f"Failed to create activity alias: {exc}") from exc
    if not response.is_success:
      raise RemoteEngineError(f"Failed to create activity alias: {response.status_code} {response.text}")

  async def _delete_existing(self, activity_id: str) -> None:
    try:
      token = await self._auth.get_token()
      response = await self._http.delete(f"{self._base_url}/activities/{quote(activity_id, safe='')}", headers={"Authorization": f"Bearer {token}"})
    except httpx.RequestError as exc:
      raise RemoteEngineError(f"Failed to delete conflicting activity: {exc}") from exc
    if not response.is_success and response.status_code != 404:
      logger.warning("Deleting conflicting activity %s returned %s", activity_id, response.status_code)

  async def delete(self, activity_id: str) -> None:
    """Delete the activity; cleanup errors are logged and never raised."""
    try:
      token = await self._auth.get_token()
      response = await self._http.delete(f"{self._base_url}/activities/{quote(activity_id, safe='')}", headers={"Authorization": f"Bearer {token}"})
      if response.is_success or response.status_code == 404:
        logger.info("Deleted activity %s", activity_id)
      else:
        logger.warning("Activity cleanup for %s returned %s", activity_id, response.status_code)
    except Exception as exc:
      logger.warning("Activity cleanup for %s failed: %s", activity_id, exc)


def _response_version(response: httpx.Response) -> int:
  try:
    payload = response.json()
  except ValueError:
    return 1
  if isinstance(payload, dict):
    version = payload.get("version")
    if isinstance(version, int) and version > 0:
      return version
  return 1
