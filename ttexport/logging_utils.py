"""Console output helpers: debug traces, progress steps and user-facing status lines."""

from __future__ import annotations

import os
import sys

_TRUTHY = ("1", "true", "yes")


def _dbg(msg: str) -> None:
    if os.getenv("TTEXPORT_DEBUG") in _TRUTHY:
        print(f"[debug] {msg}", flush=True)


def _log_step(msg: str) -> None:
    """
    Verbose progress logging for long exports (per page / per player).
    Enabled when TTEXPORT_PROGRESS or TTEXPORT_DEBUG is set.
    """
    if os.getenv("TTEXPORT_PROGRESS") in _TRUTHY or os.getenv("TTEXPORT_DEBUG") in _TRUTHY:
        print(f"[progress] {msg}", flush=True)


def status(msg: str, kind: str = "info") -> None:
    stream = sys.stderr if kind == "error" else sys.stdout
    print(f"[{kind}] {msg}", file=stream, flush=True)
