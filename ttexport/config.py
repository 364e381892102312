from __future__ import annotations

import json
import os
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path
from typing import Any, Optional

from ttexport.logging_utils import _dbg
from ttexport.sofascore import DEFAULT_SPORT, DEFAULT_TOURNAMENT_SLUG

DEFAULT_HISTORY = 200
DEFAULT_PARALLEL = 8


@dataclass(frozen=True)
class ExportConfig:
    day: date
    tournament: str = DEFAULT_TOURNAMENT_SLUG
    sport: str = DEFAULT_SPORT
    history: int = DEFAULT_HISTORY
    parallel: int = DEFAULT_PARALLEL
    out: Optional[Path] = None


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    try:
        return int(raw) if raw not in (None, "") else default
    except ValueError:
        return default


def parse_day(raw: Optional[str]) -> date:
    """YYYY-MM-DD, or today when empty."""
    s = (raw or "").strip()
    if not s:
        return date.today()
    try:
        return datetime.strptime(s, "%Y-%m-%d").date()
    except ValueError as e:
        raise ValueError(f"invalid date {raw!r}, expected YYYY-MM-DD") from e


def prefs_path() -> Path:
    raw = (os.getenv("TTEXPORT_PREFS") or "").strip()
    return Path(raw).expanduser() if raw else Path.home() / ".ttexport.json"


def _load_prefs(path: Path) -> dict:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return {}
    return data if isinstance(data, dict) else {}


def _dump_json(path: Path, payload: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")


def load_saved_history(default: int = DEFAULT_HISTORY) -> int:
    raw: Any = _load_prefs(prefs_path()).get("historyMatches")
    try:
        n = int(raw)
    except (TypeError, ValueError):
        return default
    return n if n > 0 else default


def save_history(n: int) -> None:
    path = prefs_path()
    prefs = _load_prefs(path)
    prefs["historyMatches"] = int(n)
    try:
        _dump_json(path, prefs)
    except OSError as e:
        _dbg(f"could not save prefs to {path}: {e}")


def env_default_history() -> int:
    return _env_int("TTEXPORT_HISTORY", load_saved_history())


def env_default_parallel() -> int:
    return _env_int("TTEXPORT_PARALLEL", DEFAULT_PARALLEL)


def build_config(
    *,
    date_arg: Optional[str],
    tournament: Optional[str] = None,
    sport: Optional[str] = None,
    history: Optional[int] = None,
    parallel: Optional[int] = None,
    out: Optional[str] = None,
) -> ExportConfig:
    hist = history if history and history > 0 else env_default_history()
    if hist <= 0:
        hist = DEFAULT_HISTORY
    par = parallel if parallel is not None else env_default_parallel()
    out_raw = out or os.getenv("TTEXPORT_OUT") or ""
    return ExportConfig(
        day=parse_day(date_arg if date_arg is not None else os.getenv("TTEXPORT_DATE")),
        tournament=(tournament or os.getenv("TTEXPORT_TOURNAMENT") or DEFAULT_TOURNAMENT_SLUG).strip(),
        sport=(sport or os.getenv("TTEXPORT_SPORT") or DEFAULT_SPORT).strip(),
        history=hist,
        parallel=max(0, par),
        out=Path(out_raw) if out_raw else None,
    )
