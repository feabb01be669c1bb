"""Error taxonomy for the XREF generation pipeline."""

from __future__ import annotations


class XrefError(Exception):
  """Base class for all pipeline failures with a stable machine-readable code."""

  code = "xref_error"


class ResourceNotFoundError(XrefError):
  """Raised when a referenced area revision or resource does not exist."""

  code = "not_found"


class EmptyInputError(XrefError):
  """Raised when an area revision has no placements to draw."""

  code = "empty_input"


class StorageIOError(XrefError):
  """Raised when a storage read, write or URL signing step fails."""

  code = "io_error"


class ApsAuthError(XrefError):
  """Raised when APS credentials are missing or the token request fails."""

  code = "auth_error"


class RemoteEngineError(XrefError):
  """Raised when the remote job engine rejects a request."""

  code = "remote_error"


class DefinitionConflictError(RemoteEngineError):
  """Raised when an activity still conflicts after the delete-and-recreate retry."""

  code = "definition_conflict"


class JobFailedError(XrefError):
  """Raised when a work item reaches a terminal non-success status."""

  code = "job_failed"

  def __init__(self, status: str, excerpt: str) -> None:
    super().__init__(f"WorkItem failed: {status}\n{excerpt}")
    self.status = status
    self.excerpt = excerpt


class JobTimeoutError(XrefError):
  """Raised when polling attempts are exhausted before a terminal status."""

  code = "timeout"


class RelocationFailedError(XrefError):
  """Raised when the long-term copy could not be written; callers degrade gracefully."""

  code = "relocation_failed"
