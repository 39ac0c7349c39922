#!/usr/bin/env python3
"""
Configuration and Logging Unit Tests
"""

import logging
import shutil
import tempfile
import unittest
from decimal import Decimal
from unittest.mock import patch
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[2]))

from pydantic import ValidationError

from smartpark.domain.models import SlotType
from smartpark.infrastructure.config import Settings, setup_logging


class TestSettings(unittest.TestCase):

    def test_defaults(self):
        settings = Settings()
        self.assertEqual(settings.bookings_file, "bookings.txt")
        self.assertEqual(settings.storage_backend, "file")
        self.assertEqual(settings.booking_timeout_ms, 60_000)
        self.assertEqual(settings.rates[SlotType.LARGE], Decimal("20.0"))

    def test_validation(self):
        with self.assertRaises(ValidationError):
            Settings(storage_backend="mongo")
        with self.assertRaises(ValidationError):
            Settings(log_level="CHATTY")
        with self.assertRaises(ValidationError):
            Settings(booking_timeout_ms=0)

    def test_normalization(self):
        settings = Settings(storage_backend=" SQL ", log_level="debug")
        self.assertEqual(settings.storage_backend, "sql")
        self.assertEqual(settings.log_level, "DEBUG")

    def test_settings_are_frozen(self):
        settings = Settings()
        with self.assertRaises(ValidationError):
            settings.currency = "EUR"

    def test_from_env(self):
        env = {
            "SMARTPARK_BOOKINGS_FILE": "/tmp/other.txt",
            "SMARTPARK_STORAGE_BACKEND": "sql",
            "SMARTPARK_BOOKING_TIMEOUT_MS": "120000",
            "SMARTPARK_RATE_COMPACT": "8.5",
        }
        with patch.dict("os.environ", env):
            settings = Settings.from_env()

        self.assertEqual(settings.bookings_file, "/tmp/other.txt")
        self.assertEqual(settings.storage_backend, "sql")
        self.assertEqual(settings.booking_timeout_ms, 120_000)
        self.assertEqual(settings.rates[SlotType.COMPACT], Decimal("8.5"))
        self.assertEqual(settings.rates[SlotType.REGULAR], Decimal("10.0"))

    def test_overrides_win_over_environment(self):
        with patch.dict("os.environ", {"SMARTPARK_BOOKINGS_FILE": "env.txt"}):
            settings = Settings.from_env(bookings_file="cli.txt")
        self.assertEqual(settings.bookings_file, "cli.txt")

    def test_invalid_rate_in_environment(self):
        with patch.dict("os.environ", {"SMARTPARK_RATE_LARGE": "lots"}):
            with self.assertRaises(ValidationError):
                Settings.from_env()

    def test_env_file(self):
        temp_dir = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, temp_dir, True)
        env_file = Path(temp_dir) / ".env"
        env_file.write_text("SMARTPARK_CURRENCY=EUR\n", encoding="utf-8")

        with patch.dict("os.environ", {}):
            settings = Settings.from_env(str(env_file))

        self.assertEqual(settings.currency, "EUR")

    def test_to_parking_config(self):
        settings = Settings(booking_timeout_ms=5_000, rates={"COMPACT": "1", "REGULAR": "2",
                                                             "LARGE": "3", "HANDICAPPED": "4"})
        config = settings.to_parking_config()
        self.assertEqual(config.booking_timeout_ms, 5_000)
        self.assertEqual(config.rate_for(SlotType.HANDICAPPED), Decimal("4"))


class TestSetupLogging(unittest.TestCase):

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        root = logging.getLogger()
        self.saved_handlers = root.handlers[:]
        self.saved_level = root.level

    def tearDown(self):
        root = logging.getLogger()
        for handler in root.handlers:
            handler.close()
        root.handlers = self.saved_handlers
        root.setLevel(self.saved_level)
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_file_and_console_handlers(self):
        settings = Settings(log_dir=self.temp_dir, log_level="DEBUG")

        logger = setup_logging(settings)
        logger.debug("hello")

        root = logging.getLogger()
        self.assertEqual(logger.name, "smartpark")
        self.assertEqual(root.level, logging.DEBUG)
        self.assertEqual(len(root.handlers), 2)
        self.assertTrue((Path(self.temp_dir) / "smartpark.log").exists())

    def test_console_only(self):
        setup_logging(Settings(log_dir=None))
        self.assertEqual(len(logging.getLogger().handlers), 1)


if __name__ == '__main__':
    unittest.main()
