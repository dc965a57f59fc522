import json
import tempfile
import unittest
from pathlib import Path

from timing.settings import TimerSettings, load_settings, save_settings


class TestTimerSettings(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.config_path = Path(self.tmp.name) / "config.json"

    def tearDown(self):
        self.tmp.cleanup()

    def test_defaults_without_config_file(self):
        self.assertEqual(load_settings(self.config_path), TimerSettings())

    def test_missing_and_unknown_keys(self):
        self.config_path.write_text(json.dumps({"rider_name": "Anna", "theme": "dark"}))
        settings = load_settings(self.config_path)
        self.assertEqual(settings.rider_name, "Anna")
        self.assertTrue(settings.sound_enabled)
        self.assertFalse(settings.camera_permission)

    def test_unreadable_config_falls_back_to_defaults(self):
        self.config_path.write_text("not json")
        self.assertEqual(load_settings(self.config_path), TimerSettings())

    def test_save_preserves_other_keys(self):
        self.config_path.write_text(json.dumps({"theme": "dark"}))
        save_settings(self.config_path, TimerSettings(rider_name="Anna", camera_permission=True))
        data = json.loads(self.config_path.read_text())
        self.assertEqual(data["theme"], "dark")
        self.assertEqual(data["rider_name"], "Anna")
        self.assertTrue(data["camera_permission"])
        self.assertEqual(load_settings(self.config_path).rider_name, "Anna")

    def test_display_rider_name_strips_whitespace(self):
        self.assertEqual(TimerSettings(rider_name="  ").display_rider_name(), "")


if __name__ == "__main__":
    unittest.main()
