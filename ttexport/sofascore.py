from __future__ import annotations

import asyncio
import json
import math
import os
import re
from datetime import date
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from ttexport.logging_utils import _dbg, _log_step

SOFASCORE_API_BASE = "https://www.sofascore.com/api/v1"
DEFAULT_SPORT = "table-tennis"
DEFAULT_TOURNAMENT_SLUG = "tt-elite-series"
# /team/<id>/events/last/<page> always returns 20 events per page.
EVENTS_PER_PAGE = 20
FETCH_TIMEOUT_MS = 15_000


class SofascoreError(RuntimeError):
    pass


def _forced_sofascore_base() -> str:
    """Landing-page base, en-us unless TTEXPORT_SOFASCORE_LOCALE names another locale."""
    raw = (os.getenv("TTEXPORT_SOFASCORE_LOCALE") or "en-us").strip().lower()
    if re.fullmatch(r"[a-z]{2}(?:-[a-z]{2})?", raw):
        return f"https://www.sofascore.com/{raw}"
    return "https://www.sofascore.com/en-us"


def sport_page_url(sport: str = DEFAULT_SPORT) -> str:
    return f"{_forced_sofascore_base()}/{sport}"


def _api_headers() -> Dict[str, str]:
    # Sofascore's own frontend sends a short hex token; some edges reject requests without it.
    token = (os.getenv("TTEXPORT_REQUESTED_WITH") or "").strip()
    if not token:
        return {}
    return {"x-requested-with": token}


async def _goto(page: Page, url: str, *, timeout_ms: int = 25_000) -> None:
    for wait_until in ("domcontentloaded", "commit"):
        try:
            await page.goto(url, wait_until=wait_until, timeout=timeout_ms)
            return
        except PlaywrightError as e:
            _dbg(f"goto {url} wait_until={wait_until} failed: {e}")


async def open_sport_page(page: Page, sport: str = DEFAULT_SPORT) -> None:
    """
    Land on a real Sofascore page before hitting the API so fetch() runs
    same-origin with the site's cookies.
    """
    url = sport_page_url(sport)
    _log_step(f"open {url}")
    await _goto(page, url)


async def fetch_json_via_page(page: Page, url: str, *, headers: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    if headers is None:
        headers = _api_headers()
    result = await page.evaluate(
        """
        async ([url, headers, timeoutMs]) => {
          const ac = new AbortController();
          const t = setTimeout(() => ac.abort(), timeoutMs);
          try {
            const r = await fetch(url, {
              credentials: "include",
              headers: Object.assign({ accept: "*/*" }, headers),
              signal: ac.signal,
            });
            const text = await r.text();
            return { status: r.status, text };
          } catch (e) {
            return { status: 0, text: String(e && e.message ? e.message : e) };
          } finally {
            clearTimeout(t);
          }
        }
        """,
        [url, headers, FETCH_TIMEOUT_MS],
    )
    status = int(result["status"])
    text = result["text"]
    if status != 200:
        # In-page fetch() sometimes fails with status=0 while the request context
        # (same cookies/profile) still gets through.
        try:
            resp = await page.context.request.get(url, headers=headers, timeout=FETCH_TIMEOUT_MS)
            if resp.status == 200:
                return await resp.json()
            try:
                body = await resp.text()
            except Exception:
                body = ""
            raise SofascoreError(f"HTTP {resp.status} for {url}: {body[:200]}")
        except SofascoreError:
            raise
        except Exception:
            raise SofascoreError(f"HTTP {status} for {url}: {text[:200]}")
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise SofascoreError(f"Invalid JSON for {url}: {text[:200]}") from e


def _events_of(payload: Any) -> List[Dict[str, Any]]:
    """`events` of an API page; anything that is not an object with a list of objects is empty."""
    if not isinstance(payload, Mapping):
        return []
    events = payload.get("events")
    if not isinstance(events, list):
        return []
    return [ev for ev in events if isinstance(ev, Mapping)]


def scheduled_events_url(day: date, *, sport: str = DEFAULT_SPORT) -> str:
    return f"{SOFASCORE_API_BASE}/sport/{sport}/scheduled-events/{day.isoformat()}"


async def get_scheduled_events(page: Page, day: date, *, sport: str = DEFAULT_SPORT) -> List[Dict[str, Any]]:
    data = await fetch_json_via_page(page, scheduled_events_url(day, sport=sport))
    return _events_of(data)


async def get_event(page: Page, event_id: int) -> Dict[str, Any]:
    return await fetch_json_via_page(page, f"{SOFASCORE_API_BASE}/event/{event_id}")


async def get_team_last_events(page: Page, team_id: int, *, page_index: int = 0) -> Dict[str, Any]:
    return await fetch_json_via_page(page, f"{SOFASCORE_API_BASE}/team/{team_id}/events/last/{page_index}")


def filter_tournament_events(events: Iterable[Dict[str, Any]], slug: str) -> List[Dict[str, Any]]:
    out: List[Dict[str, Any]] = []
    for ev in events:
        if not isinstance(ev, Mapping):
            continue
        tournament = ev.get("tournament")
        if not isinstance(tournament, Mapping):
            continue
        if (tournament.get("slug") or "") == slug:
            out.append(ev)
    return out


def dedupe_events(events: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    seen = set()
    out: List[Dict[str, Any]] = []
    for ev in events:
        eid = ev.get("id")
        if eid in seen:
            continue
        seen.add(eid)
        out.append(ev)
    return out


HistoryPageFetcher = Callable[[int, int], Awaitable[Dict[str, Any]]]


async def collect_team_history(
    fetch_page: HistoryPageFetcher,
    team_id: int,
    *,
    limit: int,
    page_size: int = EVENTS_PER_PAGE,
    page_delay_s: float = 0.05,
) -> List[Dict[str, Any]]:
    """
    Walk /team/<id>/events/last/<n> pages until `limit` events are collected,
    the API reports no next page, or a page comes back empty.
    """
    if limit <= 0:
        return []
    max_pages = math.ceil(limit / page_size)
    picked: List[Dict[str, Any]] = []
    page_index = 0
    has_next = True
    while has_next and page_index < max_pages and len(picked) < limit:
        payload = await fetch_page(team_id, page_index)
        events = _events_of(payload)
        if not events:
            break
        picked.extend(events)
        has_next = bool(payload.get("hasNextPage"))
        page_index += 1
        _log_step(f"team={team_id} page={page_index} events={len(picked)} next={has_next}")
        if has_next and page_delay_s > 0:
            await asyncio.sleep(page_delay_s)
    return picked[:limit]
