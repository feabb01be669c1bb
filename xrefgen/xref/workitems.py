"""Submit work items and poll them to a terminal status."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Mapping

import httpx

from xrefgen.xref.auth import ApsAuthClient
from xrefgen.xref.errors import JobFailedError, JobTimeoutError, RemoteEngineError
from xrefgen.xref.models import ProgressCallback, WorkItemArgument, WorkItemOutcome

logger = logging.getLogger(__name__)

RUNNING_STATUSES = frozenset({"pending", "inprogress"})
FAILURE_KEYWORDS = ("error", "failed", "invalid")
MAX_EXCERPT_LINES = 10
MAX_EXCERPT_CHARS = 1000


def extract_failure_excerpt(report: str | None) -> str:
  """Pick the most useful part of an engine report for a failure message."""
  if not report:
    return "Unknown error"

  error_lines = [line for line in report.split("\n") if any(keyword in line.lower() for keyword in FAILURE_KEYWORDS)]
  if error_lines:
    return "\n".join(error_lines[-MAX_EXCERPT_LINES:])
  return report[-MAX_EXCERPT_CHARS:]


class WorkItemMonitor:
  """Runs one work item against a qualified activity id."""

  def __init__(
    self,
    http: httpx.AsyncClient,
    auth: ApsAuthClient,
    *,
    base_url: str,
    poll_interval_seconds: float = 2.0,
    max_polling_attempts: int = 300,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    clock: Callable[[], float] = time.monotonic,
  ) -> None:
    self._http = http
    self._auth = auth
    self._base_url = base_url.rstrip("/")
    self._poll_interval_seconds = poll_interval_seconds
    self._max_polling_attempts = max_polling_attempts
    self._sleep = sleep
    self._clock = clock

  async def submit(self, activity_full_id: str, arguments: Mapping[str, WorkItemArgument]) -> str:
    """Submit the work item and return its id."""
    token = await self._auth.get_token()
    payload = {"activityId": activity_full_id, "arguments": {slot: argument.to_payload() for slot, argument in arguments.items()}}
    headers = {"Authorization": f"Bearer {token}", "Content-Type": "application/json", "x-ads-force": "true"}
    try:
      response = await self._http.post(f"{self._base_url}/workitems", json=payload, headers=headers)
    except httpx.RequestError as exc:
      raise RemoteEngineError(f"WorkItem submission failed: {exc}") from exc

    if not response.is_success:
      raise RemoteEngineError(f"WorkItem submission failed: {response.status_code} {response.text}")

    workitem_id = response.json().get("id")
    if not workitem_id:
      raise RemoteEngineError("WorkItem submission returned no id")
    logger.info("Submitted work item %s for %s with %s arguments", workitem_id, activity_full_id, len(arguments))
    return workitem_id

  async def _read_status(self, workitem_id: str) -> dict:
    token = await self._auth.get_token()
    try:
      response = await self._http.get(f"{self._base_url}/workitems/{workitem_id}", headers={"Authorization": f"Bearer {token}"})
    except httpx.RequestError as exc:
      raise RemoteEngineError(f"Failed to get WorkItem status: {exc}") from exc
    if not response.is_success:
      raise RemoteEngineError(f"Failed to get WorkItem status: {response.status_code}")
    return response.json()

  async def _fetch_report(self, report_url: str | None) -> str | None:
    if not report_url:
      return None
    try:
      response = await self._http.get(report_url)
    except httpx.RequestError as exc:
      logger.warning("Could not fetch work item report: %s", exc)
      return None
    if not response.is_success:
      logger.warning("Work item report request returned %s", response.status_code)
      return None
    return response.text

  async def wait(self, workitem_id: str, on_progress: ProgressCallback | None = None) -> WorkItemOutcome:
    """Poll until the work item leaves the running states or attempts run out."""
    started = self._clock()

    for attempt in range(1, self._max_polling_attempts + 1):
      data = await self._read_status(workitem_id)
      status = str(data.get("status", ""))
      elapsed = int(round(self._clock() - started))

      if status in RUNNING_STATUSES:
        if on_progress is not None:
          on_progress("aps", "Processing...", f"{elapsed}s elapsed")
        if attempt < self._max_polling_attempts:
          await self._sleep(self._poll_interval_seconds)
        continue

      report = await self._fetch_report(data.get("reportUrl"))
      if status == "success":
        logger.info("Work item %s succeeded after %ss", workitem_id, elapsed)
        return WorkItemOutcome(workitem_id=workitem_id, status=status, report=report, elapsed_seconds=elapsed)

      logger.error("Work item %s finished with status %s", workitem_id, status)
      raise JobFailedError(status, extract_failure_excerpt(report))

    timeout_seconds = int(self._max_polling_attempts * self._poll_interval_seconds)
    raise JobTimeoutError(f"WorkItem timeout ({timeout_seconds}s, {self._max_polling_attempts} polls)")
