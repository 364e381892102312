from __future__ import annotations

import re
from datetime import datetime, tzinfo
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Set

import pandas as pd

from ttexport.collector import ExportBundle
from ttexport.logging_utils import status
from ttexport.scoring import EXPORT_SET_COLUMNS, MatchStatistics, parse_iso_instant

TOURNAMENT_SHEET = "Tournament Matches"
MAX_SHEET_NAME = 31
_INVALID_SHEET_CHARS_RE = re.compile(r"[\[\]:*?/\\]")

COLUMNS: List[str] = [
    "Event ID",
    "Home Team",
    "Away Team",
    "Tournament",
    "Home Games",
    "Away Games",
    "Total Games",
    "Games Over 18.5",
    "Games Under 18.5",
    "Home Points",
    "Away Points",
    "Total Points",
    "Sets Played",
    "Status",
    "Start Time",
    *[f"Home Set {i}" for i in range(1, EXPORT_SET_COLUMNS + 1)],
    *[f"Away Set {i}" for i in range(1, EXPORT_SET_COLUMNS + 1)],
]


def format_start_time(iso: str, tz: Optional[tzinfo] = None) -> str:
    """12-hour US-style timestamp, e.g. '03/14/2025, 06:05 PM'. Local time unless tz is given."""
    dt = parse_iso_instant(iso)
    if dt is None:
        return ""
    return dt.astimezone(tz).strftime("%m/%d/%Y, %I:%M %p")


def _cell(v: Any) -> Any:
    return "" if v is None else v


def export_row(stats: MatchStatistics, tz: Optional[tzinfo] = None) -> Dict[str, Any]:
    row: Dict[str, Any] = {
        "Event ID": stats.event_id,
        "Home Team": stats.home_team,
        "Away Team": stats.away_team,
        "Tournament": stats.tournament,
        "Home Games": stats.home_games,
        "Away Games": stats.away_games,
        "Total Games": stats.total_games,
        "Games Over 18.5": stats.games_over_185,
        "Games Under 18.5": stats.games_under_185,
        "Home Points": stats.home_points,
        "Away Points": stats.away_points,
        "Total Points": stats.total_points,
        "Sets Played": stats.sets_played,
        "Status": stats.status,
        "Start Time": format_start_time(stats.start_time, tz),
    }
    for i, v in enumerate(stats.home_sets, start=1):
        row[f"Home Set {i}"] = _cell(v)
    for i, v in enumerate(stats.away_sets, start=1):
        row[f"Away Set {i}"] = _cell(v)
    return row


def rows_to_frame(rows: Iterable[MatchStatistics], tz: Optional[tzinfo] = None) -> pd.DataFrame:
    return pd.DataFrame.from_records([export_row(r, tz) for r in rows], columns=COLUMNS)


class SheetNamer:
    """
    Hands out unique Excel sheet names.
    Excel caps names at 31 chars and compares them case-insensitively.
    """

    def __init__(self, reserved: Iterable[str] = (TOURNAMENT_SHEET,)):
        self._used: Set[str] = {n.lower() for n in reserved}

    def _taken(self, name: str) -> bool:
        return name.lower() in self._used

    def claim(self, name: str, player_id: Any = None) -> str:
        clean = _INVALID_SHEET_CHARS_RE.sub("_", name or "").strip().strip("'") or "Player"
        candidate = clean[:MAX_SHEET_NAME]
        if self._taken(candidate) and player_id is not None:
            suffix = f" ({str(player_id)[-4:]})"
            candidate = f"{clean[: MAX_SHEET_NAME - len(suffix)]}{suffix}"
        n = 2
        base = candidate
        while self._taken(candidate):
            suffix = f" {n}"
            candidate = f"{base[: MAX_SHEET_NAME - len(suffix)]}{suffix}"
            n += 1
        self._used.add(candidate.lower())
        return candidate


def default_output_name(now: Optional[datetime] = None) -> str:
    now = now or datetime.now()
    return f"sofascore_data_{int(now.timestamp() * 1000)}.xlsx"


def write_workbook(bundle: ExportBundle, path: Path, *, tz: Optional[tzinfo] = None) -> Dict[str, int]:
    """
    Write the tournament sheet followed by one sheet per player with history.
    Returns sheet name -> row count.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    namer = SheetNamer()
    written: Dict[str, int] = {}
    with pd.ExcelWriter(path, engine="openpyxl") as writer:
        rows_to_frame(bundle.matches, tz).to_excel(writer, sheet_name=TOURNAMENT_SHEET, index=False)
        written[TOURNAMENT_SHEET] = len(bundle.matches)
        total = len(bundle.histories)
        for i, history in enumerate(bundle.histories, start=1):
            if not history.events:
                continue
            status(f"Processing history for {history.player_name} ({i}/{total})...")
            rows = history.rows()
            sheet = namer.claim(history.player_name, history.player_id)
            rows_to_frame(rows, tz).to_excel(writer, sheet_name=sheet, index=False)
            written[sheet] = len(rows)
    return written
