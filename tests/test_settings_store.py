import json
import os
import tempfile
import unittest
from unittest import mock

from tankpod.model.pump_state import PumpSettings
from tankpod.settings_store import (
    SettingsStore,
    coerce_bool,
    coerce_int,
    log_mode_change,
    log_setting_change,
)


class TestCoercion(unittest.TestCase):
    def test_coerce_int(self):
        self.assertEqual(coerce_int(25), 25)
        self.assertEqual(coerce_int(25.0), 25)
        self.assertEqual(coerce_int(" 30 "), 30)
        for bad in (True, 25.5, "high", None, [1]):
            self.assertIsNone(coerce_int(bad), repr(bad))

    def test_coerce_bool(self):
        self.assertIs(coerce_bool(True), True)
        self.assertIs(coerce_bool(0), False)
        self.assertIs(coerce_bool("TRUE"), True)
        self.assertIs(coerce_bool("0"), False)
        for bad in (2, "yes", None, 1.5):
            self.assertIsNone(coerce_bool(bad), repr(bad))


class TestSettingsStore(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.path = os.path.join(self.tmp.name, "settings.json")
        self.store = SettingsStore(path=self.path, defaults=PumpSettings())

    def tearDown(self):
        self.tmp.cleanup()

    def write(self, content):
        with open(self.path, "w") as f:
            f.write(content if isinstance(content, str) else json.dumps(content))

    def test_missing_file_gives_defaults(self):
        self.assertEqual(self.store.load(), PumpSettings())

    def test_missing_keys_use_defaults(self):
        self.write({"on": 30})
        settings = self.store.load()
        self.assertEqual(settings.pump_on_level, 30)
        self.assertEqual(settings.pump_off_level, 90)
        self.assertEqual(settings.pre_schedule_limit, 65)
        self.assertEqual(settings.recovery_trigger, 70)
        self.assertTrue(settings.schedules_enabled)

    def test_wrong_type_uses_default(self):
        self.write({"on": "lots", "off": 80, "sched": "maybe"})
        settings = self.store.load()
        self.assertEqual(settings.pump_on_level, 20)
        self.assertEqual(settings.pump_off_level, 80)
        self.assertTrue(settings.schedules_enabled)

    def test_corrupt_file_gives_defaults(self):
        self.write("{not json")
        self.assertEqual(self.store.load(), PumpSettings())
        self.write("[1, 2, 3]")
        self.assertEqual(self.store.load(), PumpSettings())

    def test_inconsistent_file_gives_defaults(self):
        self.write({"on": 95, "off": 90})
        self.assertEqual(self.store.load(), PumpSettings())

    def test_save_and_reload(self):
        saved = PumpSettings(pump_on_level=25, pump_off_level=85, schedules_enabled=False,
                             pre_schedule_limit=60, recovery_trigger=50, tank_height_cm=150)
        self.store.save(saved)

        with open(self.path) as f:
            record = json.load(f)
        self.assertEqual(record, {"on": 25, "off": 85, "pre": 60, "rec": 50, "sched": False, "h_cm": 150})
        self.assertFalse(os.path.exists(self.path + ".tmp"))

        loaded = SettingsStore(path=self.path, defaults=PumpSettings()).load()
        self.assertEqual(loaded, saved)

    def test_save_failure_raises(self):
        with mock.patch("tankpod.settings_store.os.replace", side_effect=OSError("disk full")):
            with self.assertRaises(OSError):
                self.store.save(PumpSettings())


class TestChangeLogs(unittest.TestCase):
    def test_mode_and_setting_logs(self):
        with tempfile.TemporaryDirectory() as log_dir:
            log_mode_change("MANUAL", log_dir=log_dir)
            log_setting_change("pump_on_level", 20, 25, log_dir=log_dir)

            with open(os.path.join(log_dir, "mode_log.txt")) as f:
                self.assertIn("Mode MANUAL (source=downlink)", f.read())
            with open(os.path.join(log_dir, "settings_log.txt")) as f:
                self.assertIn("Setting 'pump_on_level': 20 -> 25", f.read())


if __name__ == "__main__":
    unittest.main()
