from __future__ import annotations

import logging
import sys

from xrefgen.core.logging import TruncatedFormatter, _rotated_name


def test_rotated_backups_use_dash_suffix() -> None:
  assert _rotated_name("logs/xrefgen_20260101.log.3") == "logs/xrefgen_20260101.log-3"
  assert _rotated_name("logs/xrefgen_20260101.log") == "logs/xrefgen_20260101.log"


def _deep(depth: int) -> None:
  if depth == 0:
    raise ValueError("bottom")
  _deep(depth - 1)


def test_formatter_truncates_long_tracebacks() -> None:
  try:
    _deep(10)
  except ValueError:
    exc_info = sys.exc_info()

  record = logging.LogRecord("xrefgen", logging.ERROR, __file__, 1, "failed", None, exc_info)
  text = TruncatedFormatter("%(message)s").format(record)

  assert "    ...\n" in text
  assert text.rstrip().endswith("ValueError: bottom")
