import json
import tempfile
import unittest
from datetime import date
from pathlib import Path

from quarterhour.core.exceptions import SettingsError
from quarterhour.core.settings import SettingsManager, UserSettings


class TestSettingsManager(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.path = Path(self._tmp.name) / "settings.json"
        self.manager = SettingsManager(self.path)

    def test_first_load_creates_defaults(self) -> None:
        settings = self.manager.load()

        self.assertTrue(self.path.exists())
        self.assertEqual((settings.day_start_hour, settings.day_end_hour, settings.time_increment), (0, 24, 60))
        self.assertIsNone(settings.stats_start_date)
        self.assertEqual(self.manager.load().id, settings.id)

    def test_update_persists_changes(self) -> None:
        original = self.manager.load()
        updated = self.manager.update(day_start_hour=7, stats_start_date=date(2026, 10, 1))

        self.assertEqual(updated.id, original.id)
        payload = json.loads(self.path.read_text(encoding="utf-8"))
        self.assertEqual(payload["day_start_hour"], 7)
        self.assertEqual(payload["stats_start_date"], "2026-10-01")
        self.assertEqual(SettingsManager(self.path).load().stats_start_date, date(2026, 10, 1))

    def test_invalid_values_are_rejected(self) -> None:
        self.manager.load()
        cases = (
            {"time_increment": 45},
            {"day_start_hour": 18, "day_end_hour": 9},
            {"day_end_hour": 25},
            {"stats_start_date": date(2026, 10, 2), "stats_end_date": date(2026, 10, 1)},
            {"colour": "blue"},
        )
        for changes in cases:
            with self.subTest(changes=changes), self.assertRaises(SettingsError):
                self.manager.update(**changes)
        self.assertEqual(self.manager.load().time_increment, 60)

    def test_malformed_file_raises(self) -> None:
        self.path.write_text("{not json", encoding="utf-8")
        with self.assertRaises(SettingsError):
            self.manager.load()

    def test_dict_round_trip_keeps_dates(self) -> None:
        settings = UserSettings(stats_start_date=date(2026, 1, 1), stats_end_date=date(2026, 12, 31))
        self.assertEqual(UserSettings.from_dict(settings.to_dict()), settings)


if __name__ == "__main__":
    unittest.main(verbosity=2)
