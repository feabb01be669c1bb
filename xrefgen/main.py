from __future__ import annotations

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from xrefgen.api.routes import case_study
from xrefgen.config import get_settings
from xrefgen.core.exceptions import global_exception_handler, http_exception_handler, request_validation_exception_handler, xref_exception_handler
from xrefgen.core.lifespan import lifespan
from xrefgen.xref.errors import XrefError

settings = get_settings()

app = FastAPI(title="xrefgen", lifespan=lifespan, docs_url=None, redoc_url=None)

app.add_middleware(CORSMiddleware, allow_origins=list(settings.allowed_origins), allow_credentials=True, allow_methods=["GET", "POST", "OPTIONS"], allow_headers=["content-type", "authorization"], expose_headers=["content-length", "content-disposition"])

# Add exception handlers
app.add_exception_handler(Exception, global_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(XrefError, xref_exception_handler)
app.add_exception_handler(RequestValidationError, request_validation_exception_handler)


@app.get("/health", include_in_schema=False)
async def health_check() -> dict[str, str]:
  """Return a simple health status."""
  return {"status": "ok", "version": "0.1.0"}


app.include_router(case_study.router, prefix="/v1/case-study", tags=["case-study"])
