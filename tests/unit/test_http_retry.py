from __future__ import annotations

import httpx
import pytest

from xrefgen.utils.http_retry import classify_http_failure, execute_with_retry


def _status_error(status_code: int) -> httpx.HTTPStatusError:
  request = httpx.Request("GET", "https://api.test/x")
  return httpx.HTTPStatusError("failed", request=request, response=httpx.Response(status_code, request=request))


@pytest.mark.parametrize("status_code", [403, 429, 500, 503])
def test_rate_limits_and_server_errors_are_retryable(status_code: int) -> None:
  assert classify_http_failure(_status_error(status_code)).retryable is True


@pytest.mark.parametrize("status_code", [400, 401, 404, 409])
def test_other_client_errors_are_not_retryable(status_code: int) -> None:
  assert classify_http_failure(_status_error(status_code)).retryable is False


def test_transport_errors_are_retryable() -> None:
  assert classify_http_failure(httpx.ConnectError("down")).retryable is True
  assert classify_http_failure(ValueError("bad")).retryable is False


@pytest.mark.anyio
async def test_backoff_is_capped(no_sleep) -> None:
  calls = 0

  async def _always_fails() -> None:
    nonlocal calls
    calls += 1
    raise _status_error(500)

  with pytest.raises(httpx.HTTPStatusError):
    await execute_with_retry(operation_name="test", func=_always_fails, max_attempts=5, sleep=no_sleep)

  assert calls == 5
  assert no_sleep.delays == [2.0, 4.0, 8.0, 10.0]
