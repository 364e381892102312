"""Fetch orchestration: tournament match details plus every player's recent history."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Tuple

from playwright.async_api import Error as PlaywrightError

from ttexport.logging_utils import _dbg, _log_step, status
from ttexport.scoring import (
    MatchStatistics,
    _as_mapping,
    compute_match_statistics,
    start_time_sort_key,
    statistics_from_event,
)
from ttexport.sofascore import HistoryPageFetcher, SofascoreError, collect_team_history

EventFetcher = Callable[[int], Awaitable[Dict[str, Any]]]

# Errors that mean "this one record is unavailable"; anything else is a bug and propagates.
FETCH_ERRORS: Tuple[type, ...] = (SofascoreError, PlaywrightError, asyncio.TimeoutError)


@dataclass(frozen=True)
class PlayerHistory:
    player_id: int
    player_name: str
    events: Tuple[Dict[str, Any], ...] = ()

    def rows(self) -> List[MatchStatistics]:
        out = [statistics_from_event(ev) for ev in self.events if isinstance(ev, dict)]
        out.sort(key=start_time_sort_key, reverse=True)
        return out


@dataclass(frozen=True)
class ExportBundle:
    matches: List[MatchStatistics]
    histories: List[PlayerHistory] = field(default_factory=list)

    @property
    def player_count(self) -> int:
        return len(self.histories)


def unique_players(events: Iterable[Dict[str, Any]]) -> Dict[int, str]:
    players: Dict[int, str] = {}
    for ev in events:
        for side in ("homeTeam", "awayTeam"):
            team = _as_mapping(_as_mapping(ev).get(side))
            tid = team.get("id")
            if tid and isinstance(tid, (int, str)):
                players[tid] = str(team.get("name") or "")
    return players


def _limiter(parallel: int) -> Optional[asyncio.Semaphore]:
    return asyncio.Semaphore(parallel) if parallel and parallel > 0 else None


async def _bounded(sem: Optional[asyncio.Semaphore], coro: Awaitable[Any]) -> Any:
    if sem is None:
        return await coro
    async with sem:
        return await coro


async def _match_row(event_id: int, fetch_event: EventFetcher) -> Optional[MatchStatistics]:
    try:
        payload = await fetch_event(event_id)
    except FETCH_ERRORS as e:
        _dbg(f"event {event_id} fetch failed: {e}")
        return None
    stats = compute_match_statistics(payload)
    if stats is None:
        _dbg(f"event {event_id} has no event payload, skipped")
        return None
    ev = payload["event"]
    return stats.with_team_ids(
        _as_mapping(ev.get("homeTeam")).get("id"),
        _as_mapping(ev.get("awayTeam")).get("id"),
    )


async def collect_tournament_rows(
    events: Iterable[Dict[str, Any]],
    fetch_event: EventFetcher,
    *,
    parallel: int = 0,
    limiter: Optional[asyncio.Semaphore] = None,
) -> List[MatchStatistics]:
    """
    Fetch detail payloads for every event concurrently and normalize them.
    Failed or empty payloads are dropped; the rest come back newest first.
    """
    sem = limiter or _limiter(parallel)
    ids = [eid for eid in (_as_mapping(ev).get("id") for ev in events) if eid is not None]
    results = await asyncio.gather(*(_bounded(sem, _match_row(eid, fetch_event)) for eid in ids))
    rows = [r for r in results if r is not None]
    rows.sort(key=start_time_sort_key, reverse=True)
    return rows


async def _player_history(
    player_id: int,
    player_name: str,
    fetch_history_page: HistoryPageFetcher,
    *,
    limit: int,
    page_delay_s: float,
) -> PlayerHistory:
    try:
        events = await collect_team_history(
            fetch_history_page, player_id, limit=limit, page_delay_s=page_delay_s
        )
    except FETCH_ERRORS as e:
        _dbg(f"history for player {player_id} failed: {e}")
        events = []
    _log_step(f"history {player_name} ({player_id}): {len(events)} matches")
    return PlayerHistory(player_id=player_id, player_name=player_name, events=tuple(events))


async def collect_player_histories(
    players: Dict[int, str],
    fetch_history_page: HistoryPageFetcher,
    *,
    limit: int,
    parallel: int = 0,
    page_delay_s: float = 0.05,
    limiter: Optional[asyncio.Semaphore] = None,
) -> List[PlayerHistory]:
    """One limiter slot per player: each history is paged sequentially."""
    sem = limiter or _limiter(parallel)
    return list(
        await asyncio.gather(
            *(
                _bounded(
                    sem,
                    _player_history(pid, name, fetch_history_page, limit=limit, page_delay_s=page_delay_s),
                )
                for pid, name in players.items()
            )
        )
    )


async def collect_export(
    events: List[Dict[str, Any]],
    fetch_event: EventFetcher,
    fetch_history_page: HistoryPageFetcher,
    *,
    history_limit: int,
    parallel: int = 0,
    page_delay_s: float = 0.05,
) -> ExportBundle:
    players = unique_players(events)
    # Match details and history pages share one limiter: at most `parallel` requests in flight.
    limiter = _limiter(parallel)
    status(f"Found {len(players)} unique players. Fetching match history...")
    histories_task = asyncio.ensure_future(
        collect_player_histories(
            players,
            fetch_history_page,
            limit=history_limit,
            page_delay_s=page_delay_s,
            limiter=limiter,
        )
    )
    status(f"Fetching details for {len(events)} matches...")
    try:
        matches = await collect_tournament_rows(events, fetch_event, limiter=limiter)
    except BaseException:
        histories_task.cancel()
        raise
    status(f"Waiting for all {len(players)} player histories to complete...")
    histories = await histories_task
    return ExportBundle(matches=matches, histories=histories)
