from __future__ import annotations

import argparse
import asyncio
from pathlib import Path
from typing import Any, Dict, List, Optional

from playwright.async_api import Page, async_playwright

from ttexport.collector import collect_export
from ttexport.config import ExportConfig, build_config, save_history
from ttexport.logging_utils import status
from ttexport.scoring import _as_mapping
from ttexport.sofascore import (
    SofascoreError,
    dedupe_events,
    filter_tournament_events,
    get_event,
    get_scheduled_events,
    get_team_last_events,
    open_sport_page,
)
from ttexport.workbook import default_output_name, write_workbook

_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/121.0.0.0 Safari/537.36"
)


async def _with_browser(headless: bool, fn):
    async with async_playwright() as p:
        # Sofascore's API edge rejects obvious automation; look like a desktop Chrome.
        browser = await p.chromium.launch(
            headless=headless,
            args=["--disable-blink-features=AutomationControlled", "--disable-dev-shm-usage"],
        )
        context = await browser.new_context(locale="en-US", user_agent=_USER_AGENT)
        await context.add_init_script("Object.defineProperty(navigator, 'webdriver', { get: () => undefined });")
        context.set_default_timeout(15_000)
        page = await context.new_page()
        try:
            return await fn(page)
        finally:
            await browser.close()


def _require_page(page: Page) -> None:
    if page.is_closed():
        raise SofascoreError("browser page is closed")


def _side_name(ev: Dict[str, Any], side: str) -> str:
    return str(_as_mapping(ev.get(side)).get("name") or "?")


async def _tournament_events(page: Page, cfg: ExportConfig) -> List[Dict[str, Any]]:
    await open_sport_page(page, cfg.sport)
    events = await get_scheduled_events(page, cfg.day, sport=cfg.sport)
    return dedupe_events(filter_tournament_events(events, cfg.tournament))


async def list_events_on_page(page: Page, cfg: ExportConfig) -> int:
    try:
        events = await _tournament_events(page, cfg)
    except SofascoreError as e:
        status(f"Failed to fetch events: {e}", "error")
        return 1
    if not events:
        status(f"No events found for {cfg.tournament} on {cfg.day.isoformat()}", "error")
        return 1
    for ev in events:
        st = _as_mapping(ev.get("status")).get("description") or ""
        print(f"- eventId={ev.get('id')} {_side_name(ev, 'homeTeam')} vs {_side_name(ev, 'awayTeam')} [{st}]")
    return 0


async def export_on_page(page: Page, cfg: ExportConfig) -> int:
    status("Fetching tournament matches...")
    try:
        events = await _tournament_events(page, cfg)
    except SofascoreError as e:
        status(f"Failed to fetch events: {e}", "error")
        return 1
    if not events:
        status("No events found for this tournament", "error")
        return 1
    status(f"Found {len(events)} {cfg.tournament} events. Starting export...")

    async def fetch_event(event_id: int) -> Dict[str, Any]:
        _require_page(page)
        return await get_event(page, event_id)

    async def fetch_history_page(team_id: int, page_index: int) -> Dict[str, Any]:
        _require_page(page)
        return await get_team_last_events(page, team_id, page_index=page_index)

    bundle = await collect_export(
        events,
        fetch_event,
        fetch_history_page,
        history_limit=cfg.history,
        parallel=cfg.parallel,
    )
    out = cfg.out or Path(default_output_name())
    status("Generating Excel file...")
    write_workbook(bundle, out)
    status(
        f"Successfully exported {len(bundle.matches)} matches with complete histories "
        f"for {bundle.player_count} players -> {out}",
        "success",
    )
    return 0


async def cmd_events(cfg: ExportConfig, *, headless: bool) -> int:
    return await _with_browser(headless, lambda page: list_events_on_page(page, cfg))


async def cmd_export(cfg: ExportConfig, *, headless: bool) -> int:
    return await _with_browser(headless, lambda page: export_on_page(page, cfg))


def _add_common(p: argparse.ArgumentParser) -> None:
    p.add_argument("--date", default=None, help="Day to scrape, YYYY-MM-DD (default: today)")
    p.add_argument("--tournament", default=None, help="Tournament slug (default: tt-elite-series)")
    p.add_argument("--sport", default=None, help="Sport slug (default: table-tennis)")


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="ttexport")
    parser.add_argument("--headed", action="store_true", help="Run with visible browser window")
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_export = sub.add_parser("export", help="Export tournament matches and player histories to .xlsx")
    _add_common(p_export)
    p_export.add_argument("--history", type=int, default=None, help="Max history matches per player (remembered)")
    p_export.add_argument("--out", default=None, help="Output .xlsx path")
    p_export.add_argument("--parallel", type=int, default=None, help="Max concurrent API requests (0 = unlimited)")

    p_events = sub.add_parser("events", help="List the day's tournament matches")
    _add_common(p_events)

    args = parser.parse_args(argv)
    headless = not args.headed

    try:
        cfg = build_config(
            date_arg=args.date,
            tournament=args.tournament,
            sport=args.sport,
            history=getattr(args, "history", None),
            parallel=getattr(args, "parallel", None),
            out=getattr(args, "out", None),
        )
    except ValueError as e:
        parser.error(str(e))

    if args.cmd == "export":
        if args.history and args.history > 0:
            save_history(args.history)
        return asyncio.run(cmd_export(cfg, headless=headless))
    if args.cmd == "events":
        return asyncio.run(cmd_events(cfg, headless=headless))
    raise SystemExit(2)


if __name__ == "__main__":
    raise SystemExit(main())
