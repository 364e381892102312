import contextlib
import io
import tempfile
import unittest
from datetime import datetime, timezone
from pathlib import Path

from openpyxl import load_workbook

from ttexport.collector import ExportBundle, PlayerHistory
from ttexport.scoring import compute_match_statistics
from ttexport.workbook import (
    COLUMNS,
    TOURNAMENT_SHEET,
    SheetNamer,
    default_output_name,
    export_row,
    format_start_time,
    write_workbook,
)


def _event(eid: int, home_name: str = "Alpha", away_name: str = "Beta") -> dict:
    return {
        "id": eid,
        "homeTeam": {"id": 1, "name": home_name},
        "awayTeam": {"id": 2, "name": away_name},
        "tournament": {"name": "TT Elite Series"},
        "status": {"description": "Ended"},
        "startTimestamp": 1700000000,
        "homeScore": {"current": 3, "period1": 11, "period2": 11, "period3": 12},
        "awayScore": {"current": 0, "period1": 9, "period2": 4, "period3": 10},
    }


class FormatStartTimeTests(unittest.TestCase):
    def test_us_12h_format(self) -> None:
        self.assertEqual(format_start_time("2023-11-14T22:13:20.000Z", timezone.utc), "11/14/2023, 10:13 PM")
        self.assertEqual(format_start_time("2023-11-14T09:05:00.000Z", timezone.utc), "11/14/2023, 09:05 AM")

    def test_empty(self) -> None:
        self.assertEqual(format_start_time(""), "")
        self.assertEqual(format_start_time("garbage"), "")


class ExportRowTests(unittest.TestCase):
    def test_labels_and_blank_sets(self) -> None:
        stats = compute_match_statistics({"event": _event(5)})
        row = export_row(stats, timezone.utc)
        self.assertEqual(list(row), COLUMNS)
        self.assertEqual(row["Games Over 18.5"], 2)
        self.assertEqual(row["Games Under 18.5"], 1)
        self.assertEqual(row["Home Set 3"], 12)
        self.assertEqual(row["Home Set 4"], "")
        self.assertEqual(row["Away Set 7"], "")
        self.assertEqual(row["Start Time"], "11/14/2023, 10:13 PM")


class SheetNamerTests(unittest.TestCase):
    def test_duplicate_names_get_id_suffix(self) -> None:
        namer = SheetNamer()
        self.assertEqual(namer.claim("Ivan Petrov", 123456), "Ivan Petrov")
        self.assertEqual(namer.claim("Ivan Petrov", 987654), "Ivan Petrov (7654)")

    def test_truncates_to_31_chars(self) -> None:
        namer = SheetNamer()
        long_name = "Maximilian Alexander Schneider-Hoffmann"
        first = namer.claim(long_name, 1111)
        second = namer.claim(long_name, 22223333)
        self.assertEqual(first, long_name[:31])
        self.assertEqual(len(second), 31)
        self.assertTrue(second.endswith(" (3333)"))

    def test_reserved_and_case_insensitive(self) -> None:
        namer = SheetNamer()
        self.assertEqual(namer.claim("tournament matches", 42), "tournament matches (42)")
        self.assertEqual(namer.claim("ALPHA", 1), "ALPHA")
        self.assertEqual(namer.claim("alpha", 1), "alpha (1)")
        self.assertEqual(namer.claim("alpha", 1), "alpha (1) 2")

    def test_invalid_characters_replaced(self) -> None:
        namer = SheetNamer()
        self.assertEqual(namer.claim("Kim / Lee [KOR]", 9), "Kim _ Lee _KOR_")
        self.assertEqual(namer.claim("", None), "Player")


class WriteWorkbookTests(unittest.TestCase):
    def test_writes_tournament_and_player_sheets(self) -> None:
        matches = [compute_match_statistics({"event": _event(1)})]
        histories = [
            PlayerHistory(1, "Alpha", (_event(10), _event(11))),
            PlayerHistory(2, "Beta", ()),
            PlayerHistory(3, "Alpha", (_event(12),)),
        ]
        bundle = ExportBundle(matches=matches, histories=histories)
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "nested" / "out.xlsx"
            with contextlib.redirect_stdout(io.StringIO()):
                written = write_workbook(bundle, path, tz=timezone.utc)
            self.assertEqual(written, {TOURNAMENT_SHEET: 1, "Alpha": 2, "Alpha (3)": 1})

            wb = load_workbook(path)
            self.assertEqual(wb.sheetnames, [TOURNAMENT_SHEET, "Alpha", "Alpha (3)"])
            ws = wb[TOURNAMENT_SHEET]
            header = [c.value for c in ws[1]]
            self.assertEqual(header, COLUMNS)
            self.assertEqual(ws.cell(row=2, column=1).value, 1)
            self.assertEqual(ws.cell(row=2, column=COLUMNS.index("Total Points") + 1).value, 57)
            self.assertEqual(wb["Alpha"].max_row, 3)


class OutputNameTests(unittest.TestCase):
    def test_epoch_ms_name(self) -> None:
        now = datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)
        self.assertEqual(default_output_name(now), "sofascore_data_1700000000000.xlsx")


if __name__ == "__main__":
    unittest.main()
