# File: smartpark/application/parking_service.py
"""
Parking Management Application Service

The session/access layer around the billing engine. It keeps track of the
logged-in user, enforces role permissions, runs the expiration sweep at
the availability-sensitive checkpoints (reservation and slot display),
and is the boundary where reservation errors become displayable results.

Roles:
- USER       reserve slots, view own history
- ATTENDANT  mark entry/exit, payments, refunds, view slots
- ADMIN      everything an attendant can do, plus save/load and staff accounts
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional, Union
import logging

from ..domain.models import SlotType, User, UserRole
from ..domain.registry import SlotRegistry
from ..domain.ledger import BookingLedger
from ..infrastructure.config import Settings
from ..infrastructure.messaging import EventBus, AuditLogHandler, WILDCARD
from ..infrastructure.persistence import FlatFileBookingStore
from ..infrastructure.repositories import SQLAlchemyBookingStore
from .billing_engine import (
    BillingEngine, BookingStore, Clock, OperationResult,
    ReservationError, system_clock
)
from .dtos import BookingDTO, FeeDTO, SlotDTO, UserDTO
from .user_service import UserService


@dataclass
class ReservationResultDTO:
    """Outcome of a reservation request"""
    success: bool
    message: str
    booking_id: Optional[int] = None
    slot_id: Optional[int] = None


class ParkingService:
    """
    Main application service for parking management

    Orchestrates the use cases of the system on behalf of the current
    session user. Access denials and rule violations are returned as
    failed results, never raised.
    """

    def __init__(
        self,
        engine: BillingEngine,
        users: UserService,
        store: Optional[BookingStore] = None
    ):
        self.engine = engine
        self.users = users
        self.store = store
        self.current_user: Optional[User] = None
        self.logger = logging.getLogger(self.__class__.__name__)

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    def register(self, username: str, password: str = "") -> Optional[User]:
        return self.users.register(username, password, UserRole.USER)

    def login(self, username: str, password: str) -> Optional[User]:
        user = self.users.login(username, password)
        if user is not None:
            self.current_user = user
            self.logger.info(f"{user.username} logged in as {user.role}")
        return user

    def logout(self) -> None:
        if self.current_user is not None:
            self.logger.info(f"{self.current_user.username} logged out")
        self.current_user = None

    def current_user_dto(self) -> Optional[UserDTO]:
        if self.current_user is None:
            return None
        return UserDTO.model_validate(self.current_user)

    def _has_role(self, *roles: UserRole) -> bool:
        return self.current_user is not None and self.current_user.role in roles

    def _deny(self, message: str) -> OperationResult:
        self.logger.warning(f"Access denied: {message}")
        return OperationResult(False, f"Access denied: {message}")

    # ------------------------------------------------------------------
    # Use cases
    # ------------------------------------------------------------------

    def reserve_slot(
        self,
        slot_id: Optional[int] = None,
        preferred_type: Optional[SlotType] = None
    ) -> ReservationResultDTO:
        """
        Reserve a slot for the logged-in user
        Without slot_id the first free slot is taken
        """
        if not self._has_role(UserRole.USER):
            denied = self._deny("only logged-in users can reserve slots.")
            return ReservationResultDTO(False, denied.message)

        self.engine.expire_pending_bookings()

        actor = self.current_user.as_actor()
        try:
            if slot_id is None:
                booking = self.engine.reserve_any(actor, preferred_type)
            else:
                booking = self.engine.reserve(slot_id, actor)
        except ReservationError as e:
            self.logger.info(f"Reservation failed for {actor.username}: {e}")
            return ReservationResultDTO(False, f"Reservation failed: {e}")

        timeout_s = self.engine.config.booking_timeout_ms // 1000
        return ReservationResultDTO(
            True,
            f"Booking created with ID: {booking.id}. "
            f"You have {timeout_s} seconds to arrive before this booking expires.",
            booking.id,
            booking.slot_id
        )

    def mark_entry(self, booking_id: int) -> OperationResult:
        if not self._has_role(UserRole.ATTENDANT, UserRole.ADMIN):
            return self._deny("only attendants or admins can mark entries.")
        return self.engine.mark_entry(booking_id)

    def mark_exit(self, booking_id: int) -> OperationResult:
        if not self._has_role(UserRole.ATTENDANT, UserRole.ADMIN):
            return self._deny("only attendants or admins can mark exits.")
        return self.engine.mark_exit(booking_id)

    def pay(self, booking_id: int, amount: Union[Decimal, str, float]) -> OperationResult:
        if not self._has_role(UserRole.ATTENDANT, UserRole.ADMIN):
            return self._deny("only attendants or admins can take payments.")
        return self.engine.pay(booking_id, amount)

    def check_refund(self, booking_id: int, amount: Union[Decimal, str, float]) -> OperationResult:
        if not self._has_role(UserRole.ATTENDANT, UserRole.ADMIN):
            return self._deny("only attendants or admins can check refunds.")
        return self.engine.check_refund_eligibility(booking_id, amount)

    def slot_status(self) -> Optional[List[SlotDTO]]:
        """Live slot list for staff; None when access is denied"""
        if not self._has_role(UserRole.ATTENDANT, UserRole.ADMIN):
            self._deny("only staff can view the master slot list.")
            return None
        self.engine.expire_pending_bookings()
        return [SlotDTO.model_validate(slot) for slot in self.engine.registry.snapshot()]

    def fee_schedule(self) -> List[FeeDTO]:
        currency = self.engine.config.currency
        return [
            FeeDTO(slot_type=slot_type, rate_per_minute=rate, currency=currency)
            for slot_type, rate in self.engine.fee_schedule().items()
        ]

    def my_history(self) -> Optional[List[BookingDTO]]:
        """Bookings of the logged-in user; None when access is denied"""
        if not self._has_role(UserRole.USER):
            self._deny("only users can view their personal history.")
            return None
        username = self.current_user.username
        history = []
        for booking_id in self.users.booking_ids(username):
            booking = self.engine.ledger.find_by_id(booking_id)
            if booking is not None and booking.username == username:
                history.append(BookingDTO.model_validate(booking))
        return history

    def register_staff(self, username: str, password: str) -> OperationResult:
        if not self._has_role(UserRole.ADMIN):
            return self._deny("only administrators can register staff.")
        user = self.users.register(username, password, UserRole.ATTENDANT)
        if user is None:
            return OperationResult(False, "Username already taken or invalid.")
        return OperationResult(True, f"Staff user registered with role: {user.role}")

    def save_bookings(self) -> OperationResult:
        if not self._has_role(UserRole.ADMIN):
            return self._deny("only administrators can save system data.")
        if self.store is None:
            return OperationResult(False, "No booking store configured.")
        return self.engine.save(self.store)

    def load_bookings(self) -> OperationResult:
        if not self._has_role(UserRole.ADMIN):
            return self._deny("only administrators can load system data.")
        if self.store is None:
            return OperationResult(False, "No booking store configured.")
        result = self.engine.load(self.store)
        if result.success:
            self._relink_history()
        return result

    def _relink_history(self) -> None:
        """Rebuild user histories from the loaded ledger"""
        ledger = self.engine.ledger
        for user in self.users.users():
            for booking_id in user.booking_ids:
                booking = ledger.find_by_id(booking_id)
                if booking is None or booking.username != user.username:
                    user.remove_booking_id(booking_id)

        for booking in ledger.all():
            if booking.id is None:
                continue
            if booking.id not in self.users.booking_ids(booking.username):
                user = self.users.find_by_username(booking.username)
                if user is not None:
                    user.add_booking_id(booking.id)

    def find_booking(self, booking_id: int) -> Optional[BookingDTO]:
        booking = self.engine.ledger.find_by_id(booking_id)
        return BookingDTO.model_validate(booking) if booking else None


# ============================================================================
# SERVICE FACTORY
# ============================================================================

class ParkingServiceFactory:
    """Factory for creating fully wired parking services"""

    @staticmethod
    def create_service(
        settings: Optional[Settings] = None,
        clock: Clock = system_clock,
        store: Optional[BookingStore] = None,
        event_bus: Optional[EventBus] = None
    ) -> ParkingService:
        """
        Wire registry, ledger, engine and user service together
        Slots are created from the configured layout
        """
        settings = settings or Settings()
        config = settings.to_parking_config()

        if store is None:
            store = ParkingServiceFactory.create_store(settings)

        if event_bus is None:
            event_bus = EventBus()
            event_bus.subscribe(WILDCARD, AuditLogHandler())

        registry = SlotRegistry()
        registry.add_slots(*config.slot_layout)

        users = UserService()
        users.ensure_default_admin()

        engine = BillingEngine(
            registry,
            BookingLedger(),
            config=config,
            clock=clock,
            history=users,
            event_bus=event_bus,
        )
        return ParkingService(engine, users, store)

    @staticmethod
    def create_store(settings: Settings) -> BookingStore:
        if settings.storage_backend == "sql":
            return SQLAlchemyBookingStore(settings.database_url)
        return FlatFileBookingStore(settings.bookings_file)
