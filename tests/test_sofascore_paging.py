import asyncio
import unittest
from datetime import date

from ttexport.sofascore import (
    _events_of,
    collect_team_history,
    dedupe_events,
    filter_tournament_events,
    scheduled_events_url,
)


class FakeHistoryPages:
    def __init__(self, pages, has_next=True):
        self.pages = pages
        self.has_next = has_next
        self.calls = []

    async def __call__(self, team_id, page_index):
        self.calls.append((team_id, page_index))
        events = self.pages[page_index] if page_index < len(self.pages) else []
        return {"events": events, "hasNextPage": self.has_next and page_index + 1 < len(self.pages)}


def _page(start: int, n: int = 20) -> list:
    return [{"id": start + i} for i in range(n)]


class CollectTeamHistoryTests(unittest.TestCase):
    def test_stops_at_limit_and_trims(self) -> None:
        fake = FakeHistoryPages([_page(0), _page(100), _page(200), _page(300)])
        out = asyncio.run(collect_team_history(fake, 7, limit=45, page_delay_s=0))
        self.assertEqual(len(out), 45)
        self.assertEqual(fake.calls, [(7, 0), (7, 1), (7, 2)])
        self.assertEqual(out[0]["id"], 0)
        self.assertEqual(out[-1]["id"], 204)

    def test_stops_without_next_page(self) -> None:
        fake = FakeHistoryPages([_page(0, 12)])
        out = asyncio.run(collect_team_history(fake, 7, limit=200, page_delay_s=0))
        self.assertEqual(len(out), 12)
        self.assertEqual(fake.calls, [(7, 0)])

    def test_empty_page_stops(self) -> None:
        fake = FakeHistoryPages([_page(0), []])
        out = asyncio.run(collect_team_history(fake, 7, limit=200, page_delay_s=0))
        self.assertEqual(len(out), 20)
        self.assertEqual(len(fake.calls), 2)

    def test_non_object_page_stops(self) -> None:
        for bad in (["unexpected"], "oops", None, {"events": "nope"}):
            async def fetch_page(team_id, page_index, bad=bad):
                return bad

            self.assertEqual(asyncio.run(collect_team_history(fetch_page, 7, limit=40, page_delay_s=0)), [])

    def test_zero_limit_fetches_nothing(self) -> None:
        fake = FakeHistoryPages([_page(0)])
        self.assertEqual(asyncio.run(collect_team_history(fake, 7, limit=0)), [])
        self.assertEqual(fake.calls, [])


class EventListTests(unittest.TestCase):
    def test_filter_by_tournament_slug(self) -> None:
        events = [
            {"id": 1, "tournament": {"slug": "tt-elite-series"}},
            {"id": 2, "tournament": {"slug": "setka-cup"}},
            {"id": 3, "tournament": None},
            {"id": 4},
            "junk",
            {"id": 5, "tournament": "tt-elite-series"},
        ]
        self.assertEqual([e["id"] for e in filter_tournament_events(events, "tt-elite-series")], [1])

    def test_dedupe_keeps_first(self) -> None:
        events = [{"id": 1, "v": "a"}, {"id": 2}, {"id": 1, "v": "b"}]
        out = dedupe_events(events)
        self.assertEqual([e["id"] for e in out], [1, 2])
        self.assertEqual(out[0]["v"], "a")

    def test_events_of_keeps_objects_only(self) -> None:
        self.assertEqual(_events_of({"events": [{"id": 1}, "x", 3]}), [{"id": 1}])
        self.assertEqual(_events_of([{"id": 1}]), [])
        self.assertEqual(_events_of({"events": None}), [])

    def test_scheduled_events_url(self) -> None:
        self.assertEqual(
            scheduled_events_url(date(2025, 3, 9)),
            "https://www.sofascore.com/api/v1/sport/table-tennis/scheduled-events/2025-03-09",
        )


if __name__ == "__main__":
    unittest.main()
