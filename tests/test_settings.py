import json
import logging
import tempfile
import unittest
from pathlib import Path

from storage_manager.settings import AppSettings, SettingsStorage


class SettingsStorageTests(unittest.TestCase):
    def test_load_returns_defaults_when_missing(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "settings.json"
            storage = SettingsStorage(path)

            settings = storage.load()

            self.assertEqual(AppSettings(), settings)
            self.assertEqual(1000, settings.max_keys)
            self.assertEqual(30.0, settings.request_timeout)

    def test_load_sanitizes_invalid_values(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "settings.json"
            payload = {
                "max_keys": "nope",
                "request_timeout": -1,
                "log_level": "chatty",
            }
            path.write_text(json.dumps(payload), encoding="utf-8")
            storage = SettingsStorage(path)

            settings = storage.load()

            self.assertEqual(AppSettings(), settings)

    def test_load_reads_valid_values(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "settings.json"
            path.write_text(
                json.dumps({"max_keys": 250, "request_timeout": "12.5", "log_level": "debug"}),
                encoding="utf-8",
            )

            settings = SettingsStorage(path).load()

            self.assertEqual(AppSettings(max_keys=250, request_timeout=12.5, log_level="DEBUG"), settings)
            self.assertEqual(logging.DEBUG, settings.logging_level)

    def test_load_ignores_non_object_payload(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "settings.json"
            path.write_text("[1, 2, 3]", encoding="utf-8")

            self.assertEqual(AppSettings(), SettingsStorage(path).load())

    def test_save_sanitizes_minimum_values(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "settings.json"
            storage = SettingsStorage(path)
            settings = AppSettings(max_keys=0, request_timeout=0.1, log_level="loud")

            storage.save(settings)

            saved = json.loads(path.read_text(encoding="utf-8"))
            self.assertEqual(1, saved["max_keys"])
            self.assertEqual(1.0, saved["request_timeout"])
            self.assertEqual("WARNING", saved["log_level"])


if __name__ == "__main__":
    unittest.main()
