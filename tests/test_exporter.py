import csv
import json
import tempfile
import unittest
from datetime import date, datetime, timezone
from pathlib import Path

from openpyxl import load_workbook

from quarterhour.core.exporter import (
    ExportFormat,
    ExportMode,
    ExportOptions,
    build_json_document,
    default_export_filename,
    generate_export_table,
    write_export,
)
from quarterhour.core.models import PersistedId, Project

from support import DAY, NEXT_DAY, make_slot

ALPHA = Project(id=PersistedId("alpha"), name="Alpha", color="#ff0000")
BETA = Project(id=PersistedId("beta"), name="Beta", color="#00ff00")
PROJECTS = [ALPHA, BETA]
EXPORTED_AT = datetime(2026, 10, 21, 12, 0, tzinfo=timezone.utc)


def sample_slots():
    return [
        make_slot("a2", ALPHA.id, 9.25, note="review"),
        make_slot("a1", ALPHA.id, 9.0, note="planning"),
        make_slot("b1", BETA.id, 10.0),
        make_slot("n1", PersistedId("gone"), 8.0, day=NEXT_DAY, note='quote "this"'),
    ]


class TestExportTables(unittest.TestCase):
    def test_summary_groups_by_date_and_project(self) -> None:
        table = generate_export_table(sample_slots(), PROJECTS, ExportMode.SUMMARY)

        self.assertEqual(table.columns, ["Date", "Project", "Hours", "Notes"])
        self.assertEqual(
            table.rows,
            [
                {"Date": "2026-10-19", "Project": "Alpha", "Hours": 0.5, "Notes": "planning; review"},
                {"Date": "2026-10-19", "Project": "Beta", "Hours": 0.25, "Notes": ""},
                {"Date": "2026-10-20", "Project": "Unknown Project", "Hours": 0.25, "Notes": 'quote "this"'},
            ],
        )

    def test_detailed_lists_every_slot_in_order(self) -> None:
        table = generate_export_table(sample_slots(), PROJECTS, ExportMode.DETAILED)

        self.assertEqual(table.columns, ["Date", "Project", "Start Time", "End Time", "Note"])
        self.assertEqual([row["Start Time"] for row in table.rows], ["09:00", "09:15", "10:00", "08:00"])
        self.assertEqual(table.rows[1]["End Time"], "09:30")
        self.assertEqual(table.rows[2]["Note"], "")

    def test_json_document(self) -> None:
        document = build_json_document(sample_slots(), PROJECTS, exported_at=EXPORTED_AT)

        self.assertEqual(document["exportDate"], "2026-10-21T12:00:00+00:00")
        self.assertEqual(document["totalSlots"], 4)
        self.assertEqual(document["totalHours"], 1.0)
        first = document["slots"][0]
        self.assertEqual(first["project"], {"id": "alpha", "name": "Alpha", "color": "#ff0000"})
        self.assertEqual((first["startTime"], first["endTime"], first["timeSlotNumber"]), ("09:00", "09:15", 9.0))
        self.assertIsNone(document["slots"][2]["note"])
        self.assertIsNone(document["slots"][3]["project"]["color"])

    def test_default_filenames(self) -> None:
        today = date(2026, 10, 21)
        self.assertEqual(
            default_export_filename(ExportOptions(ExportMode.SUMMARY, ExportFormat.CSV), today),
            "time-tracking-summary-2026-10-21.csv",
        )
        self.assertEqual(
            default_export_filename(ExportOptions(ExportMode.DETAILED, ExportFormat.EXCEL), today),
            "time-tracking-detailed-2026-10-21.xlsx",
        )
        self.assertEqual(
            default_export_filename(ExportOptions(ExportMode.DETAILED, ExportFormat.JSON), today),
            "time-tracking-2026-10-21.json",
        )


class TestWriteExport(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.root = Path(self._tmp.name)

    def test_csv_quotes_every_field(self) -> None:
        path = self.root / "nested" / "export.csv"
        write_export(sample_slots(), PROJECTS, ExportOptions(ExportMode.SUMMARY, ExportFormat.CSV), path)

        text = path.read_text(encoding="utf-8")
        self.assertTrue(text.startswith('"Date","Project","Hours","Notes"'))
        with path.open(newline="", encoding="utf-8") as handle:
            rows = list(csv.DictReader(handle))
        self.assertEqual(rows[2]["Notes"], 'quote "this"')
        self.assertEqual(rows[0]["Hours"], "0.5")

    def test_json_file(self) -> None:
        path = self.root / "export.json"
        options = ExportOptions(ExportMode.SUMMARY, ExportFormat.JSON)
        write_export(sample_slots(), PROJECTS, options, path, exported_at=EXPORTED_AT)

        payload = json.loads(path.read_text(encoding="utf-8"))
        self.assertEqual(payload["totalSlots"], 4)
        self.assertEqual(len(payload["slots"]), 4)

    def test_excel_workbook(self) -> None:
        path = self.root / "export.xlsx"
        options = ExportOptions(ExportMode.DETAILED, ExportFormat.EXCEL, start=DAY, end=NEXT_DAY)
        write_export(sample_slots(), PROJECTS, options, path)

        workbook = load_workbook(path)
        sheet = workbook["Data"]
        rows = list(sheet.iter_rows(values_only=True))
        self.assertEqual(rows[0], ("Date", "Project", "Start Time", "End Time", "Note"))
        self.assertEqual(len(rows), 5)
        metadata = dict(workbook["Metadata"].iter_rows(values_only=True))
        self.assertEqual(metadata["Mode"], "detailed")
        self.assertEqual(metadata["Start"], "2026-10-19")


if __name__ == "__main__":
    unittest.main(verbosity=2)
