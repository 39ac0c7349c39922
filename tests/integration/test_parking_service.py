#!/usr/bin/env python3
"""
Parking Service Integration Tests

End-to-end scenarios through the session layer: role checks, the full
reserve / entry / exit / pay flow, expiration checkpoints and save/load
across service instances.
"""

import shutil
import tempfile
import unittest
from decimal import Decimal
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[2]))

from smartpark.domain.models import Booking, BookingStatus, SlotType
from smartpark.application.parking_service import ParkingServiceFactory
from smartpark.infrastructure.config import Settings
from smartpark.infrastructure.messaging import EventBus, EventRecorder, WILDCARD
from smartpark.infrastructure.persistence import FlatFileBookingStore
from smartpark.infrastructure.repositories import SQLAlchemyBookingStore
from tests.fakes import FakeClock


class ServiceTestCase(unittest.TestCase):

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.settings = Settings(
            bookings_file=str(Path(self.temp_dir) / "bookings.txt"),
            log_dir=None
        )
        self.clock = FakeClock()
        self.recorder = EventRecorder()
        bus = EventBus()
        bus.subscribe(WILDCARD, self.recorder)
        self.service = ParkingServiceFactory.create_service(self.settings, clock=self.clock, event_bus=bus)
        self.service.register("alice", "pw")

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def login_as(self, username, password):
        self.service.logout()
        self.assertIsNotNone(self.service.login(username, password))

    def add_attendant(self):
        self.login_as("admin", "admin")
        self.assertTrue(self.service.register_staff("sam", "pw").success)


class TestAccessControl(ServiceTestCase):

    def test_guest_is_denied(self):
        result = self.service.reserve_slot(1)
        self.assertFalse(result.success)
        self.assertTrue(result.message.startswith("Access denied"))
        self.assertIsNone(self.service.slot_status())
        self.assertIsNone(self.service.my_history())
        self.assertFalse(self.service.mark_entry(1).success)
        self.assertFalse(self.service.save_bookings().success)

    def test_staff_cannot_reserve(self):
        self.login_as("admin", "admin")
        self.assertFalse(self.service.reserve_slot(1).success)
        self.assertIsNone(self.service.my_history())

    def test_user_cannot_operate_gates(self):
        self.login_as("alice", "pw")
        booking_id = self.service.reserve_slot(1).booking_id

        self.assertFalse(self.service.mark_entry(booking_id).success)
        self.assertFalse(self.service.mark_exit(booking_id).success)
        self.assertFalse(self.service.pay(booking_id, "10").success)
        self.assertFalse(self.service.check_refund(booking_id, "1").success)
        self.assertIsNone(self.service.slot_status())
        self.assertFalse(self.service.register_staff("eve", "pw").success)
        self.assertFalse(self.service.load_bookings().success)
        self.assertEqual(self.service.find_booking(booking_id).status, "PENDING")

    def test_attendant_cannot_administer(self):
        self.add_attendant()
        self.login_as("sam", "pw")
        self.assertIsNotNone(self.service.slot_status())
        self.assertFalse(self.service.save_bookings().success)
        self.assertFalse(self.service.register_staff("eve", "pw").success)

    def test_fee_schedule_is_public(self):
        fees = self.service.fee_schedule()
        self.assertEqual([f.slot_type for f in fees], ["COMPACT", "REGULAR", "LARGE", "HANDICAPPED"])
        self.assertEqual(fees[0].rate_per_minute, Decimal("7.0"))

    def test_login_failure_keeps_guest(self):
        self.assertIsNone(self.service.login("alice", "nope"))
        self.assertIsNone(self.service.current_user_dto())


class TestParkingFlow(ServiceTestCase):

    def test_full_session(self):
        self.login_as("alice", "pw")
        reservation = self.service.reserve_slot(1)
        self.assertTrue(reservation.success)
        self.assertEqual(reservation.booking_id, 1)
        self.assertIn("60 seconds", reservation.message)

        self.add_attendant()
        self.login_as("sam", "pw")
        self.clock.advance(10_000)
        self.assertTrue(self.service.mark_entry(1).success)
        self.clock.advance(125_000)
        exit_result = self.service.mark_exit(1)
        self.assertTrue(exit_result.success)
        self.assertEqual(exit_result.amount, Decimal("21.00"))
        self.assertEqual(exit_result.message, "Exit recorded. Total amount due: $21.00")
        self.assertFalse(self.service.pay(1, "20").success)
        self.assertTrue(self.service.pay(1, "21.00").success)
        self.assertTrue(self.service.check_refund(1, "5").success)

        slots = self.service.slot_status()
        self.assertEqual(slots[0].status, "FREE")

        self.login_as("alice", "pw")
        history = self.service.my_history()
        self.assertEqual(len(history), 1)
        self.assertEqual(history[0].status, "COMPLETED")
        self.assertEqual(history[0].amount_display, "$21.00")
        self.assertEqual(
            self.recorder.types(),
            ["booking.created", "vehicle.entered", "vehicle.exited", "payment.accepted"]
        )

    def test_reserve_any_and_preferred_type(self):
        self.login_as("alice", "pw")
        self.assertEqual(self.service.reserve_slot().slot_id, 1)
        self.assertEqual(self.service.reserve_slot(preferred_type=SlotType.HANDICAPPED).slot_id, 4)
        self.assertEqual(self.service.reserve_slot().slot_id, 2)
        self.assertEqual(self.service.reserve_slot().slot_id, 3)

        full = self.service.reserve_slot()
        self.assertFalse(full.success)
        self.assertIn("No free slot", full.message)

    def test_reservation_failures_are_reported(self):
        self.login_as("alice", "pw")
        self.service.reserve_slot(2)

        taken = self.service.reserve_slot(2)
        missing = self.service.reserve_slot(99)

        self.assertFalse(taken.success)
        self.assertIn("already occupied", taken.message)
        self.assertFalse(missing.success)
        self.assertIn("does not exist", missing.message)
        self.assertEqual(self.service.engine.ledger.next_booking_id, 2)

    def test_expired_booking_frees_slot_at_reservation(self):
        self.login_as("alice", "pw")
        self.service.reserve_slot(1)
        self.clock.advance(61_000)

        second = self.service.reserve_slot(1)

        self.assertTrue(second.success)
        self.assertEqual(second.booking_id, 2)
        first = self.service.find_booking(1)
        self.assertEqual(first.status, BookingStatus.CANCELLED.value)

    def test_slot_status_runs_expiration(self):
        self.login_as("alice", "pw")
        self.service.reserve_slot(3)
        self.clock.advance(60_001)

        self.login_as("admin", "admin")
        slots = self.service.slot_status()

        self.assertEqual(slots[2].status, "FREE")
        self.assertIn("booking.expired", self.recorder.types())

    def test_late_entry_after_expiry_is_rejected(self):
        self.login_as("alice", "pw")
        self.service.reserve_slot(1)
        self.clock.advance(70_000)
        self.login_as("admin", "admin")
        self.service.slot_status()

        result = self.service.mark_entry(1)

        self.assertFalse(result.success)
        self.assertIn("CANCELLED", result.message)


class TestSaveAndLoad(ServiceTestCase):

    def build_second_service(self, store=None):
        service = ParkingServiceFactory.create_service(self.settings, clock=self.clock, store=store)
        service.register("alice", "pw")
        return service

    def make_bookings(self):
        self.login_as("alice", "pw")
        self.service.reserve_slot(1)
        self.service.reserve_slot(2)
        self.login_as("admin", "admin")
        self.service.mark_entry(2)

    def test_save_and_load_across_services(self):
        self.make_bookings()
        self.assertTrue(self.service.save_bookings().success)

        restored = self.build_second_service()
        restored.login("admin", "admin")
        result = restored.load_bookings()

        self.assertTrue(result.success)
        slots = restored.slot_status()
        self.assertEqual([s.status for s in slots], ["OCCUPIED", "OCCUPIED", "FREE", "FREE"])
        self.assertEqual(restored.engine.ledger.next_booking_id, 3)

        restored.logout()
        restored.login("alice", "pw")
        self.assertEqual([b.id for b in restored.my_history()], [1, 2])

    def test_load_rebuilds_histories_from_loaded_bookings(self):
        FlatFileBookingStore(self.settings.bookings_file).save([
            Booking("bob", 3, id=1, creation_time=self.clock()),
        ])
        self.service.register("bob", "pw")
        self.login_as("alice", "pw")
        self.assertEqual(self.service.reserve_slot(1).booking_id, 1)

        self.login_as("admin", "admin")
        self.assertTrue(self.service.load_bookings().success)

        self.login_as("alice", "pw")
        self.assertEqual(self.service.my_history(), [])
        self.assertEqual(self.service.users.booking_ids("alice"), [])

        self.login_as("bob", "pw")
        history = self.service.my_history()
        self.assertEqual([(b.id, b.username, b.slot_id) for b in history], [(1, "bob", 3)])

    def test_history_only_lists_own_bookings(self):
        self.service.register("bob", "pw")
        self.login_as("alice", "pw")
        self.service.reserve_slot(1)
        self.service.users.add_booking_id("bob", 1)

        self.login_as("bob", "pw")
        self.assertEqual(self.service.my_history(), [])

    def test_load_missing_file_clears_ledger(self):
        self.make_bookings()
        result = self.service.load_bookings()
        self.assertTrue(result.success)
        self.assertEqual(len(self.service.engine.ledger), 0)
        self.assertEqual(self.service.engine.registry.occupied_count, 0)

    def test_sql_backend(self):
        db_url = f"sqlite:///{Path(self.temp_dir) / 'smartpark.db'}"
        store = SQLAlchemyBookingStore(db_url)
        self.addCleanup(store.dispose)
        self.service.store = store
        self.make_bookings()
        self.assertTrue(self.service.save_bookings().success)

        restored = self.build_second_service(store)
        restored.login("admin", "admin")
        self.assertTrue(restored.load_bookings().success)
        self.assertEqual(len(restored.engine.ledger), 2)

    def test_factory_store_selection(self):
        self.assertIsInstance(ParkingServiceFactory.create_store(self.settings), FlatFileBookingStore)
        sql_settings = Settings(
            storage_backend="sql",
            database_url=f"sqlite:///{Path(self.temp_dir) / 'factory.db'}",
            log_dir=None
        )
        store = ParkingServiceFactory.create_store(sql_settings)
        self.addCleanup(store.dispose)
        self.assertIsInstance(store, SQLAlchemyBookingStore)


if __name__ == '__main__':
    unittest.main()
