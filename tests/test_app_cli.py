import io
import json
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout
from pathlib import Path

from quarterhour.app import main
from quarterhour.core.logging_config import reset_logging
from quarterhour.core.paths import reset_app_data_directory


class TestCommandLine(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.data_dir = Path(self._tmp.name)
        self.addCleanup(reset_app_data_directory)
        self.addCleanup(reset_logging)

    def run_cli(self, *args: str) -> tuple[int, str, str]:
        out, err = io.StringIO(), io.StringIO()
        with redirect_stdout(out), redirect_stderr(err):
            code = main(["--data-dir", str(self.data_dir), *args])
        return code, out.getvalue(), err.getvalue()

    def test_track_and_show_a_day(self) -> None:
        self.assertEqual(self.run_cli("project", "Alpha")[0], 0)
        code, out, _err = self.run_cli("paint", "alpha", "09:00", "10:00", "--date", "2026-10-19")
        self.assertEqual(code, 0)
        self.assertIn("Added 4 slots", out)

        code, out, _err = self.run_cli("day", "--date", "2026-10-19")
        self.assertEqual(code, 0)
        self.assertIn("09:00-10:00", out)
        self.assertIn("Alpha", out)
        self.assertIn("total 1.00h", out)

        code, out, _err = self.run_cli("clear", "09:00", "09:30", "--date", "2026-10-19")
        self.assertEqual(code, 0)
        self.assertEqual(len((self.data_dir / "time_slots.jsonl").read_text(encoding="utf-8").splitlines()), 2)

    def test_unknown_project(self) -> None:
        code, _out, err = self.run_cli("paint", "nobody", "09:00", "10:00")
        self.assertEqual(code, 2)
        self.assertIn("Unknown project", err)

    def test_stats_remember_range(self) -> None:
        self.run_cli("project", "Alpha")
        self.run_cli("paint", "Alpha", "09:00", "09:30", "--date", "2026-10-19")

        code, out, _err = self.run_cli("stats", "--start", "2026-10-01", "--end", "2026-10-31")

        self.assertEqual(code, 0)
        self.assertIn("30m", out)
        settings = json.loads((self.data_dir / "settings.json").read_text(encoding="utf-8"))
        self.assertEqual((settings["stats_start_date"], settings["stats_end_date"]), ("2026-10-01", "2026-10-31"))

    def test_export_writes_file(self) -> None:
        self.run_cli("project", "Alpha")
        self.run_cli("paint", "Alpha", "09:00", "09:30", "--date", "2026-10-19")
        target = self.data_dir / "out.json"

        code, _out, _err = self.run_cli("export", "--format", "json", "--output", str(target))

        self.assertEqual(code, 0)
        self.assertEqual(json.loads(target.read_text(encoding="utf-8"))["totalSlots"], 2)

    def test_invalid_time_is_a_usage_error(self) -> None:
        with self.assertRaises(SystemExit) as raised:
            self.run_cli("clear", "09:10", "10:00")
        self.assertEqual(raised.exception.code, 2)


if __name__ == "__main__":
    unittest.main(verbosity=2)
