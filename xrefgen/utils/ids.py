"""Identifier utilities."""

from __future__ import annotations

import secrets
import string
import uuid


def generate_job_id() -> str:
  """Return a new progress job identifier."""
  return str(uuid.uuid4())


def generate_run_id(size: int = 12) -> str:
  """Return a short run id that is safe inside activity names and object keys."""
  alphabet = string.ascii_lowercase + string.digits
  return "".join(secrets.choice(alphabet) for _ in range(size))
