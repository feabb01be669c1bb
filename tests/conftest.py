"""Shared fixtures for the XREF generation tests."""

from __future__ import annotations

import pytest


class StaticTokenAuth:
  """Token source that never talks to the network."""

  def __init__(self, token: str = "test-token") -> None:
    self.token = token
    self.calls = 0

  async def get_token(self) -> str:
    self.calls += 1
    return self.token


@pytest.fixture
def anyio_backend():
  return "asyncio"


@pytest.fixture
def static_auth() -> StaticTokenAuth:
  return StaticTokenAuth()


@pytest.fixture
def no_sleep():
  """Async sleep replacement that records requested delays."""
  delays: list[float] = []

  async def _sleep(seconds: float) -> None:
    delays.append(seconds)

  _sleep.delays = delays  # type: ignore[attr-defined]
  return _sleep
