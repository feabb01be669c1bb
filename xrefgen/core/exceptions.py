import logging
from typing import Any

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from xrefgen.xref.errors import XrefError

logger = logging.getLogger("uvicorn.error")

_XREF_STATUS_CODES = {
  "not_found": status.HTTP_404_NOT_FOUND,
  "empty_input": status.HTTP_422_UNPROCESSABLE_ENTITY,
}


def _sanitize_validation_errors(errors: Any) -> list[dict[str, Any]]:
  """Return validation errors without raw input payloads."""
  sanitized: list[dict[str, Any]] = []
  for error in errors:
    scrubbed = {key: value for key, value in error.items() if key not in {"input", "ctx"}}
    sanitized.append({key: value if isinstance(value, str | int | float | bool | list | tuple | type(None)) else str(value) for key, value in scrubbed.items()})
  return sanitized


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
  """Global exception handler to catch unhandled errors."""
  logger.error("Global exception path=%s error_type=%s", request.url.path, type(exc).__name__, exc_info=True)
  return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"detail": "Internal Server Error"})


async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
  """Log request validation errors for debugging without leaking payloads."""
  sanitized_errors = _sanitize_validation_errors(exc.errors())
  logger.warning("Request validation failed path=%s method=%s errors=%s", request.url.path, request.method, sanitized_errors)
  return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content={"detail": sanitized_errors})


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
  """Handle HTTPExceptions; 5xx details stay in the logs."""
  if exc.status_code >= 500:
    logger.error("HTTPException path=%s status_code=%s detail=%s", request.url.path, exc.status_code, exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"detail": "Internal Server Error"})
  return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=getattr(exc, "headers", None))


async def xref_exception_handler(request: Request, exc: XrefError) -> JSONResponse:
  """Map pipeline errors raised outside the generator boundary onto HTTP statuses."""
  status_code = _XREF_STATUS_CODES.get(exc.code, status.HTTP_502_BAD_GATEWAY)
  if status_code >= 500:
    logger.error("XREF failure path=%s code=%s error=%s", request.url.path, exc.code, exc)
  return JSONResponse(status_code=status_code, content={"detail": str(exc), "code": exc.code})
