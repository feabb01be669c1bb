"""HTTP call retry logic with retryable vs non-retryable status classification."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

import httpx

logger = logging.getLogger(__name__)

T = TypeVar("T")


class HttpFailureClassification:
  """Classification result for a failed HTTP call."""

  def __init__(self, *, retryable: bool, reason: str, status_code: int | None) -> None:
    self.retryable = retryable
    self.reason = reason
    self.status_code = status_code


def classify_http_failure(exc: Exception) -> HttpFailureClassification:
  """
  Classify an HTTP failure as retryable or non-retryable.

  Retryable (transient):
    - 403: Google APIs report per-user rate limits this way
    - 429: too many requests
    - 5xx: server errors
    - Transport errors (connect/read timeouts, resets)

  Everything else fails fast.
  """
  if isinstance(exc, httpx.HTTPStatusError):
    status = exc.response.status_code
    if status in (403, 429):
      return HttpFailureClassification(retryable=True, reason="Rate limited", status_code=status)
    if 500 <= status < 600:
      return HttpFailureClassification(retryable=True, reason="Server error", status_code=status)
    return HttpFailureClassification(retryable=False, reason=f"Client error {status}", status_code=status)

  if isinstance(exc, httpx.TransportError):
    return HttpFailureClassification(retryable=True, reason=f"Transport error: {type(exc).__name__}", status_code=None)

  return HttpFailureClassification(retryable=False, reason=f"Unknown error type: {type(exc).__name__}", status_code=None)


async def execute_with_retry(
  *,
  operation_name: str,
  func: Callable[[], Awaitable[T]],
  max_attempts: int = 3,
  initial_backoff_ms: int = 2000,
  max_backoff_ms: int = 10000,
  sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
  """
  Execute an HTTP operation with exponential backoff for transient failures.

  The backoff before retry N (1-based) is min(initial_backoff_ms * 2^(N-1), max_backoff_ms).
  The original exception is re-raised when it is non-retryable or attempts run out.
  """
  attempt = 0

  while True:
    attempt += 1

    try:
      result = await func()
      if attempt > 1:
        logger.info("HTTP operation succeeded after retry: operation=%s, attempt=%d/%d", operation_name, attempt, max_attempts)
      return result

    except Exception as exc:
      classification = classify_http_failure(exc)

      logger.warning(
        "HTTP operation failed: operation=%s, attempt=%d/%d, status=%s, retryable=%s, reason=%s",
        operation_name,
        attempt,
        max_attempts,
        classification.status_code or "none",
        classification.retryable,
        classification.reason,
      )

      if not classification.retryable or attempt >= max_attempts:
        raise

      backoff_ms = min(initial_backoff_ms * (2 ** (attempt - 1)), max_backoff_ms)
      logger.info("Retrying HTTP operation after backoff: operation=%s, attempt=%d/%d, backoff_ms=%d", operation_name, attempt, max_attempts, backoff_ms)
      await sleep(backoff_ms / 1000.0)
