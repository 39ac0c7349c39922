#!/usr/bin/env python3
"""
CLI Integration Tests

Drives the text menu with scripted input against a fully wired service.
"""

import shutil
import tempfile
import unittest
from unittest.mock import patch
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[2]))

from smartpark import main as main_module
from smartpark.application.parking_service import ParkingServiceFactory
from smartpark.infrastructure.config import Settings
from smartpark.presentation.cli import ParkingMenu, MENU_ITEMS, EXIT_CHOICE
from tests.fakes import FakeClock


class ScriptedConsole:
    """Feeds prepared answers to prompts and records everything printed"""

    def __init__(self, answers):
        self.answers = list(answers)
        self.lines = []

    def read(self, prompt):
        if not self.answers:
            raise EOFError
        return self.answers.pop(0)

    def write(self, text=""):
        self.lines.append(text)

    @property
    def text(self):
        return "\n".join(self.lines)


class TestParkingMenu(unittest.TestCase):

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        settings = Settings(bookings_file=str(Path(self.temp_dir) / "bookings.txt"), log_dir=None)
        self.clock = FakeClock()
        self.service = ParkingServiceFactory.create_service(settings, clock=self.clock)

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def run_menu(self, *answers):
        console = ScriptedConsole(answers)
        menu = ParkingMenu(self.service, console.read, console.write, console.read)
        menu.run()
        return console

    def test_menu_lists_every_option(self):
        console = self.run_menu(str(EXIT_CHOICE))
        self.assertIn("Status: Guest", console.lines)
        self.assertIn(f"{EXIT_CHOICE}. Exit Application", console.lines)
        self.assertEqual(len(MENU_ITEMS), 13)
        self.assertEqual(console.lines[-1], "Goodbye.")

    def test_user_and_admin_session(self):
        console = self.run_menu(
            "1", "alice", "pw",
            "2", "alice", "pw",
            "3", "",
            "11",
            "12",
            "2", "admin", "admin",
            "4", "1",
            "6",
            "13",
        )

        self.assertIn("Success: User registered with ID 2", console.lines)
        self.assertIn("Login successful! Welcome, alice", console.lines)
        self.assertIn("Logged in as: alice [USER]", console.lines)
        self.assertIn("Success: Booking created with ID: 1", console.text)
        self.assertIn("Booking[id=1, slot=1, status=PENDING, amount=pending]", console.lines)
        self.assertIn("Logged out.", console.lines)
        self.assertIn("Entry recorded for Booking ID 1.", console.lines)
        self.assertIn("Live Slot Status", console.text)
        self.assertIn("OCCUPIED", console.text)

    def test_exit_and_fees(self):
        self.service.register("alice", "pw")
        self.service.login("alice", "pw")
        self.service.reserve_slot(3)
        self.service.logout()

        console = self.run_menu(
            "2", "admin", "admin",
            "4", "1",
            "5", "1",
            "7",
            "13",
        )

        self.assertIn("Exit recorded. Total amount due: $20.00", console.lines)
        self.assertIn("Compact Slot         : $  7.00 / min", console.lines)
        self.assertIn("Large Slot           : $ 20.00 / min", console.lines)

    def test_denied_actions(self):
        console = self.run_menu("6", "11", "8", "13")
        self.assertIn("Access Denied: Only Staff can view the master slot list.", console.lines)
        self.assertIn("Access Denied: Only Users can view their personal history.", console.lines)
        self.assertIn("Access denied: only administrators can save system data.", console.lines)

    def test_invalid_input_is_retried(self):
        console = self.run_menu("abc", "99", "13")
        self.assertIn("Please enter a valid number.", console.lines)
        self.assertIn("Invalid choice.", console.lines)
        self.assertEqual(console.lines[-1], "Goodbye.")

    def test_end_of_input_stops_loop(self):
        console = self.run_menu("2", "alice")
        self.assertNotIn("Goodbye.", console.lines)

    def test_admin_save_and_load(self):
        console = self.run_menu("2", "admin", "admin", "8", "9", "10", "sam", "pw", "13")
        self.assertIn("Saved 0 bookings.", console.lines)
        self.assertIn("Loaded 0 bookings.", console.lines)
        self.assertIn("Staff user registered with role: ATTENDANT", console.lines)


class TestCommandLine(unittest.TestCase):

    def test_parse_args(self):
        args = main_module.parse_args([
            "--storage", "sql", "--database-url", "sqlite://", "--log-level", "DEBUG"
        ])
        self.assertEqual(args.storage, "sql")
        self.assertEqual(args.database_url, "sqlite://")
        self.assertEqual(args.log_level, "DEBUG")
        self.assertIsNone(args.bookings_file)

    def test_parse_args_rejects_unknown_backend(self):
        with patch("sys.stderr"):
            with self.assertRaises(SystemExit):
                main_module.parse_args(["--storage", "mongo"])

    def test_main_passes_overrides(self):
        with patch.object(main_module, "ParkingApplication") as app_class:
            code = main_module.main(["--bookings-file", "custom.txt", "--storage", "file"])

        self.assertEqual(code, 0)
        settings = app_class.call_args[0][0]
        self.assertEqual(settings.bookings_file, "custom.txt")
        self.assertEqual(settings.storage_backend, "file")
        app_class.return_value.run.assert_called_once()

    def test_main_exit_codes(self):
        with patch.object(main_module, "ParkingApplication", side_effect=KeyboardInterrupt):
            self.assertEqual(main_module.main([]), 130)
        with patch.object(main_module, "ParkingApplication", side_effect=RuntimeError("boom")):
            with patch("logging.error"):
                self.assertEqual(main_module.main([]), 1)


if __name__ == '__main__':
    unittest.main()
