from __future__ import annotations

import math
import re
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

Number = Union[int, float]

OVER_THRESHOLD = 19
DEFAULT_PERIOD_COUNT = 5
MIN_PERIOD_SCAN = 7
# Upper bound on scanned periods whatever defaultPeriodCount claims.
MAX_PERIOD_SCAN = 15
EXPORT_SET_COLUMNS = 7
# Plain ASCII decimal literal: no underscores, no non-ASCII digits.
_NUMERIC_RE = re.compile(r"[+-]?(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?")


@dataclass(frozen=True)
class DerivedSet:
    period: int
    home_score: Optional[Number]
    away_score: Optional[Number]
    total: Number
    is_over_threshold: bool


@dataclass(frozen=True)
class MatchStatistics:
    event_id: Any
    home_team: str
    away_team: str
    tournament: str
    home_games: Number
    away_games: Number
    total_games: Number
    home_points: Number
    away_points: Number
    total_points: Number
    sets_played: int
    games_over_185: int
    games_under_185: int
    status: str
    start_time: str
    home_sets: Tuple[Optional[Number], ...]
    away_sets: Tuple[Optional[Number], ...]
    home_team_id: Optional[int] = None
    away_team_id: Optional[int] = None

    def with_team_ids(self, home_team_id: Optional[int], away_team_id: Optional[int]) -> "MatchStatistics":
        return replace(self, home_team_id=home_team_id, away_team_id=away_team_id)

    def to_dict(self) -> Dict[str, Any]:
        row: Dict[str, Any] = {
            "eventId": self.event_id,
            "homeTeam": self.home_team,
            "awayTeam": self.away_team,
            "tournament": self.tournament,
            "homeGames": self.home_games,
            "awayGames": self.away_games,
            "totalGames": self.total_games,
            "homePoints": self.home_points,
            "awayPoints": self.away_points,
            "totalPoints": self.total_points,
            "setsPlayed": self.sets_played,
            "gamesOver185": self.games_over_185,
            "gamesUnder185": self.games_under_185,
            "status": self.status,
            "startTime": self.start_time,
        }
        for i, v in enumerate(self.home_sets, start=1):
            row[f"homeSet{i}"] = v
        for i, v in enumerate(self.away_sets, start=1):
            row[f"awaySet{i}"] = v
        if self.home_team_id is not None:
            row["homeTeamId"] = self.home_team_id
        if self.away_team_id is not None:
            row["awayTeamId"] = self.away_team_id
        return row


def safe_num(value: Any) -> Optional[Number]:
    """
    Coerce a raw score field to a finite number.
    Anything that is not a finite number (None, bools, blank or garbage strings, NaN, inf) is None.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        n = value
    elif isinstance(value, str):
        s = value.strip()
        if not _NUMERIC_RE.fullmatch(s):
            return None
        n = float(s)
    else:
        return None
    if not math.isfinite(n):
        return None
    return int(n) if n.is_integer() else n


def _as_mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _period_count(hint: Any) -> int:
    n = safe_num(hint)
    if n is None:
        return DEFAULT_PERIOD_COUNT
    return min(int(n), MAX_PERIOD_SCAN)


def derive_set_stats(
    home_score: Optional[Mapping[str, Any]],
    away_score: Optional[Mapping[str, Any]],
    default_period_count: Any = DEFAULT_PERIOD_COUNT,
) -> List[DerivedSet]:
    """
    Per-set totals for every period that was actually played.

    Periods 1..max(defaultPeriodCount, 7) are scanned so matches extended past the
    nominal format are still read. A period with no value on either side is skipped.
    """
    home = _as_mapping(home_score)
    away = _as_mapping(away_score)
    max_periods = max(_period_count(default_period_count), MIN_PERIOD_SCAN)
    sets: List[DerivedSet] = []
    for i in range(1, max_periods + 1):
        h = safe_num(home.get(f"period{i}"))
        a = safe_num(away.get(f"period{i}"))
        if h is None and a is None:
            continue
        total = (h or 0) + (a or 0)
        sets.append(
            DerivedSet(
                period=i,
                home_score=h,
                away_score=a,
                total=total,
                is_over_threshold=total >= OVER_THRESHOLD,
            )
        )
    return sets


def format_iso_instant(timestamp: Any) -> str:
    ts = safe_num(timestamp)
    if not ts:
        return ""
    try:
        dt = datetime.fromtimestamp(ts, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return ""
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def parse_iso_instant(value: str) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _name(obj: Any) -> str:
    return str(_as_mapping(obj).get("name") or "")


def compute_match_statistics(raw_match: Any) -> Optional[MatchStatistics]:
    if not isinstance(raw_match, Mapping):
        return None
    event = raw_match.get("event")
    if not isinstance(event, Mapping):
        return None
    return statistics_from_event(event)


def statistics_from_event(event: Mapping[str, Any]) -> MatchStatistics:
    home_score = _as_mapping(event.get("homeScore"))
    away_score = _as_mapping(event.get("awayScore"))
    sets = derive_set_stats(home_score, away_score, event.get("defaultPeriodCount"))

    home_points = sum((s.home_score or 0) for s in sets)
    away_points = sum((s.away_score or 0) for s in sets)
    home_games = safe_num(home_score.get("current")) or 0
    away_games = safe_num(away_score.get("current")) or 0
    over = sum(1 for s in sets if s.is_over_threshold)

    return MatchStatistics(
        event_id=event.get("id"),
        home_team=_name(event.get("homeTeam")),
        away_team=_name(event.get("awayTeam")),
        tournament=_name(event.get("tournament")),
        home_games=home_games,
        away_games=away_games,
        total_games=home_games + away_games,
        home_points=home_points,
        away_points=away_points,
        total_points=home_points + away_points,
        sets_played=len(sets),
        games_over_185=over,
        games_under_185=len(sets) - over,
        status=str(_as_mapping(event.get("status")).get("description") or ""),
        start_time=format_iso_instant(event.get("startTimestamp")),
        home_sets=tuple(safe_num(home_score.get(f"period{i}")) for i in range(1, EXPORT_SET_COLUMNS + 1)),
        away_sets=tuple(safe_num(away_score.get(f"period{i}")) for i in range(1, EXPORT_SET_COLUMNS + 1)),
    )


def start_time_sort_key(stats: MatchStatistics) -> int:
    dt = parse_iso_instant(stats.start_time)
    if dt is None:
        return 0
    return int(dt.timestamp() * 1000)
