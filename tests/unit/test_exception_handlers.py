"""Unit tests for API exception sanitization behavior."""

from __future__ import annotations

import json

import pytest
from fastapi import HTTPException
from starlette.requests import Request

from xrefgen.core.exceptions import _sanitize_validation_errors, http_exception_handler, xref_exception_handler
from xrefgen.xref.errors import EmptyInputError, JobTimeoutError, ResourceNotFoundError


def _request() -> Request:
  return Request({"type": "http", "method": "POST", "path": "/v1/case-study/generate", "headers": []})


def test_sanitize_validation_errors_removes_input_and_ctx() -> None:
  """Ensure validation errors stay JSON-serializable and redact raw request payloads."""
  errors = [{"type": "extra_forbidden", "loc": ("body", "force"), "msg": "Extra inputs are not permitted", "input": {"secret": "x"}, "ctx": {"error": ValueError("bad")}}]
  sanitized = _sanitize_validation_errors(errors)
  assert sanitized == [{"type": "extra_forbidden", "loc": ("body", "force"), "msg": "Extra inputs are not permitted"}]


@pytest.mark.anyio
@pytest.mark.parametrize(("exc", "status_code"), [(ResourceNotFoundError("missing"), 404), (EmptyInputError("no placements"), 422), (JobTimeoutError("timeout"), 502)])
async def test_xref_errors_map_to_status_codes(exc, status_code: int) -> None:
  response = await xref_exception_handler(_request(), exc)
  assert response.status_code == status_code
  assert json.loads(response.body)["code"] == exc.code


@pytest.mark.anyio
async def test_server_error_details_are_hidden() -> None:
  response = await http_exception_handler(_request(), HTTPException(status_code=503, detail="XREF generation is not configured."))
  assert response.status_code == 503
  assert json.loads(response.body) == {"detail": "Internal Server Error"}
