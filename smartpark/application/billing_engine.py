# File: smartpark/application/billing_engine.py
"""
Billing / Lifecycle Engine

Moves bookings through their state machine and computes fees:

    PENDING -> ACTIVE -> COMPLETED   (entry, then exit)
    PENDING -> CANCELLED             (expiration sweep)

Nothing leaves COMPLETED or CANCELLED.

Error handling follows two tiers:
1. Reservation failures (no slot, no actor) raise ReservationError
   subclasses which the caller is expected to display.
2. Every other rule violation (wrong-state transition, negative amount,
   clock skew on exit, missing entry time) is local and non-fatal: the
   operation logs a warning, leaves state unchanged and returns a failed
   OperationResult.

Expiration is pull-based. The engine never starts a timer; callers run
expire_pending_bookings() at their own checkpoints.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Callable, Dict, List, Optional, Protocol, Union, runtime_checkable
import logging
import time

from ..domain.models import (
    Actor, Booking, BookingStatus, ParkingConfig, ParkingSlot, SlotType,
    DomainEvent, BookingCreatedEvent, VehicleEnteredEvent, VehicleExitedEvent,
    BookingExpiredEvent, PaymentAcceptedEvent
)
from ..domain.registry import SlotRegistry
from ..domain.ledger import BookingLedger
from ..domain.strategies import (
    FeeQuote, PricingStrategy, ParkingStrategy,
    PerMinutePricingStrategy, FirstAvailableStrategy, PreferredTypeStrategy
)
from ..infrastructure.messaging import EventBus

Clock = Callable[[], int]


def system_clock() -> int:
    """Current wall-clock time in epoch milliseconds"""
    return int(time.time() * 1000)


# ============================================================================
# EXCEPTIONS
# ============================================================================

class ParkingServiceError(Exception):
    """Base exception for parking service errors"""
    pass


class ReservationError(ParkingServiceError):
    """Exception for reservation errors"""
    pass


class SlotUnavailableError(ReservationError):
    """Slot does not exist, is occupied, or no slot is free"""

    def __init__(self, message: str, slot_id: Optional[int] = None):
        super().__init__(message)
        self.slot_id = slot_id


class InvalidActorError(ReservationError):
    """No actor identity was supplied for an operation that requires one"""
    pass


class PersistenceError(ParkingServiceError):
    """Booking storage could not be read or written"""
    pass


# ============================================================================
# RESULTS AND COLLABORATORS
# ============================================================================

@dataclass
class OperationResult:
    """Outcome of a non-fatal engine operation"""
    success: bool
    message: str
    booking: Optional[Booking] = None
    amount: Optional[Decimal] = None

    def __bool__(self) -> bool:
        return self.success


@runtime_checkable
class BookingHistory(Protocol):
    """Per-user list of booking ids, owned outside the core"""

    def add_booking_id(self, username: str, booking_id: int) -> None:
        ...

    def booking_ids(self, username: str) -> List[int]:
        ...


@runtime_checkable
class BookingStore(Protocol):
    """Persistence adapter for the booking ledger"""

    def save(self, bookings: List[Booking]) -> None:
        ...

    def load(self) -> List[Booking]:
        ...


# ============================================================================
# BILLING ENGINE
# ============================================================================

class BillingEngine:
    """
    Booking lifecycle and billing state machine

    Operates on a SlotRegistry and a BookingLedger it does not own. Time is
    read from an injectable clock returning epoch milliseconds.
    """

    def __init__(
        self,
        registry: SlotRegistry,
        ledger: BookingLedger,
        config: Optional[ParkingConfig] = None,
        clock: Clock = system_clock,
        history: Optional[BookingHistory] = None,
        event_bus: Optional[EventBus] = None,
        pricing_strategy: Optional[PricingStrategy] = None,
        parking_strategy: Optional[ParkingStrategy] = None
    ):
        self.registry = registry
        self.ledger = ledger
        self.config = config or ParkingConfig()
        self.clock = clock
        self.history = history
        self.event_bus = event_bus
        self.pricing_strategy = pricing_strategy or PerMinutePricingStrategy(self.config)
        self.parking_strategy = parking_strategy or FirstAvailableStrategy()
        self.logger = logging.getLogger(self.__class__.__name__)

    # ------------------------------------------------------------------
    # Reservation
    # ------------------------------------------------------------------

    def reserve(self, slot_id: int, actor: Optional[Union[Actor, str]]) -> Booking:
        """
        Reserve a specific slot

        Raises:
            InvalidActorError: no actor identity supplied
            SlotUnavailableError: slot does not exist or is occupied
        """
        actor = self._require_actor(actor)

        slot = self.registry.find_by_id(slot_id)
        if slot is None:
            raise SlotUnavailableError(f"Slot id {slot_id} does not exist.", slot_id)
        if slot.occupied:
            raise SlotUnavailableError(f"Slot id {slot_id} is already occupied.", slot_id)

        return self._create_reservation(slot, actor)

    def reserve_any(
        self,
        actor: Optional[Union[Actor, str]],
        preferred_type: Optional[SlotType] = None
    ) -> Booking:
        """
        Reserve the first free slot in registry order
        With preferred_type, a free slot of that type is taken first

        Raises:
            InvalidActorError: no actor identity supplied
            SlotUnavailableError: every slot is occupied
        """
        actor = self._require_actor(actor)

        strategy = self.parking_strategy
        if preferred_type is not None:
            strategy = PreferredTypeStrategy(SlotType(preferred_type))

        slot = strategy.allocate_slot(self.registry)
        if slot is None:
            raise SlotUnavailableError("No free slot available for reservation.")

        return self._create_reservation(slot, actor)

    def _require_actor(self, actor: Optional[Union[Actor, str]]) -> Actor:
        if isinstance(actor, str):
            actor = Actor(actor)
        if actor is None or not actor.is_valid:
            raise InvalidActorError("Cannot reserve slot: no valid user identity supplied.")
        return actor

    def _create_reservation(self, slot: ParkingSlot, actor: Actor) -> Booking:
        booking = self.ledger.create_booking(actor.username, slot.id, self.clock())
        slot.assign(booking.id)

        if self.history is not None:
            self.history.add_booking_id(actor.username, booking.id)

        self.logger.info(f"Booking {booking.id} created for {actor.username} on slot {slot.id}")
        self._publish(BookingCreatedEvent(booking.id, actor.username, slot.id))
        return booking

    # ------------------------------------------------------------------
    # Entry / exit
    # ------------------------------------------------------------------

    def mark_entry(self, booking_id: Optional[int]) -> OperationResult:
        """
        PENDING -> ACTIVE

        Records the entry time. A missing slot rolls the transition back;
        a slot that exists but is not marked occupied is re-assigned.
        """
        booking = self.ledger.find_by_id(booking_id)
        if booking is None:
            return self._reject(f"Cannot mark entry: booking {booking_id} not found.")

        if booking.status != BookingStatus.PENDING:
            return self._reject(
                f"Cannot mark entry for Booking ID {booking.id}. Current status: {booking.status}. "
                f"Only PENDING bookings can be marked as entry.",
                booking
            )

        booking.status = BookingStatus.ACTIVE
        booking.entry_time = self.clock()

        slot = self.registry.find_by_id(booking.slot_id)
        if slot is None:
            booking.status = BookingStatus.PENDING
            booking.entry_time = 0
            return self._reject(
                f"Slot ID {booking.slot_id} not found during entry for Booking ID {booking.id}.",
                booking
            )

        if not slot.occupied:
            self.logger.warning(
                f"Slot {slot.id} was not marked occupied for Booking ID {booking.id}; re-assigning"
            )
            slot.assign(booking.id)

        self.logger.info(f"Entry recorded for booking {booking.id} on slot {slot.id}")
        self._publish(VehicleEnteredEvent(booking.id, slot.id, booking.entry_time))
        return OperationResult(True, f"Entry recorded for Booking ID {booking.id}.", booking)

    def mark_exit(self, booking_id: Optional[int]) -> OperationResult:
        """
        ACTIVE -> COMPLETED

        Bills ceil(minutes parked) at the slot type's per-minute rate, with
        a one minute minimum, then frees the slot.
        """
        booking = self.ledger.find_by_id(booking_id)
        if booking is None:
            return self._reject(f"Cannot mark exit: booking {booking_id} not found.")

        if booking.status != BookingStatus.ACTIVE:
            return self._reject(
                f"Cannot mark exit for Booking ID {booking.id}. Current status: {booking.status}. "
                f"Only ACTIVE bookings can be marked as exit.",
                booking
            )

        if not booking.has_entered:
            return self._reject(
                f"Cannot mark exit for Booking ID {booking.id}. "
                f"Entry time was never recorded. Please mark entry first.",
                booking
            )

        booking.exit_time = self.clock()
        if booking.exit_time < booking.entry_time:
            booking.exit_time = 0
            return self._reject(
                f"Exit time cannot be before entry time for Booking ID {booking.id}.",
                booking
            )

        slot = self.registry.find_by_id(booking.slot_id)
        if slot is None:
            self.logger.warning(
                f"Slot ID {booking.slot_id} not found for Booking ID {booking.id}. "
                f"Using default {self.config.fallback_slot_type.value} rate."
            )

        quote = self.pricing_strategy.calculate_fee(
            slot.slot_type if slot else None,
            booking.exit_time - booking.entry_time
        )

        booking.amount = quote.amount
        booking.status = BookingStatus.COMPLETED

        if slot is not None:
            slot.release()

        self.logger.info(
            f"Exit recorded for booking {booking.id}: {quote.billed_minutes} min x "
            f"{quote.rate_per_minute} = {quote.amount}"
        )
        self._publish(VehicleExitedEvent(
            booking.id, booking.slot_id, booking.entry_time, booking.exit_time,
            quote.billed_minutes, quote.amount
        ))
        return OperationResult(
            True,
            f"Exit recorded. Total amount due: ${quote.amount:.2f}",
            booking,
            quote.amount
        )

    # ------------------------------------------------------------------
    # Expiration
    # ------------------------------------------------------------------

    def expire_pending_bookings(self) -> List[Booking]:
        """
        Cancel PENDING bookings older than the booking timeout
        Returns: bookings cancelled by this sweep
        """
        now = self.clock()
        expired = []

        for booking in self.ledger.find_by_status(BookingStatus.PENDING):
            age = booking.age_ms(now)
            if age <= self.config.booking_timeout_ms:
                continue

            booking.status = BookingStatus.CANCELLED
            self.registry.release(booking.slot_id)
            expired.append(booking)

            self.logger.info(f"Booking ID {booking.id} expired and was auto-cancelled.")
            self._publish(BookingExpiredEvent(booking.id, booking.slot_id, age))

        return expired

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    def pay(self, booking_id: Optional[int], amount: Optional[Union[Decimal, str, int, float]]) -> OperationResult:
        """
        Accept a payment for a COMPLETED booking

        With no computed due amount the payment is accepted and recorded as
        the booking amount; otherwise the payment must cover the amount due.
        """
        booking = self.ledger.find_by_id(booking_id)
        paid = self._to_decimal(amount)
        if booking is None or paid is None:
            return self._reject("Payment failed: Booking or amount is missing.", booking)

        if paid < Decimal('0'):
            return self._reject("Payment failed: Amount cannot be negative.", booking)

        if booking.status != BookingStatus.COMPLETED:
            return self._reject(
                f"Payment failed: Booking ID {booking.id} is not in COMPLETED status. "
                f"Current status: {booking.status}",
                booking
            )

        due = booking.amount
        if due is None:
            booking.amount = paid
            self._publish(PaymentAcceptedEvent(booking.id, paid, None))
            return OperationResult(True, f"Payment of ${paid:.2f} recorded.", booking, paid)

        if paid < due:
            return self._reject(
                f"Payment failed: Amount ${paid:.2f} is less than due amount ${due:.2f}",
                booking
            )

        self.logger.info(f"Payment of {paid} accepted for booking {booking.id} (due {due})")
        self._publish(PaymentAcceptedEvent(booking.id, paid, due))
        return OperationResult(True, f"Payment of ${paid:.2f} accepted.", booking, paid)

    def check_refund_eligibility(
        self,
        booking_id: Optional[int],
        amount: Optional[Union[Decimal, str, int, float]]
    ) -> OperationResult:
        """Validate that a refund could be issued; never mutates state"""
        booking = self.ledger.find_by_id(booking_id)
        requested = self._to_decimal(amount)
        if booking is None or requested is None:
            return self._reject("Refund check failed: Booking or amount is missing.", booking)

        if requested < Decimal('0'):
            return self._reject("Refund check failed: Amount cannot be negative.", booking)

        if booking.status != BookingStatus.COMPLETED:
            return self._reject(
                f"Refund not allowed: Booking ID {booking.id} is not in COMPLETED status. "
                f"Current status: {booking.status}",
                booking
            )

        return OperationResult(True, f"Booking ID {booking.id} is eligible for a refund.", booking, requested)

    # ------------------------------------------------------------------
    # Fees
    # ------------------------------------------------------------------

    def quote(self, slot_type: Optional[SlotType], duration_ms: int) -> FeeQuote:
        """Fee for a stay without touching any booking"""
        return self.pricing_strategy.calculate_fee(slot_type, duration_ms)

    def fee_schedule(self) -> Dict[SlotType, Decimal]:
        """Per-minute rate for every slot type"""
        return {slot_type: self.config.rate_for(slot_type) for slot_type in SlotType}

    # ------------------------------------------------------------------
    # Persistence boundary
    # ------------------------------------------------------------------

    def save(self, store: BookingStore) -> OperationResult:
        """Snapshot the ledger into a store"""
        bookings = self.ledger.all()
        try:
            store.save(bookings)
        except PersistenceError as e:
            self.logger.error(f"Error saving bookings: {e}", exc_info=True)
            return OperationResult(False, f"Error saving bookings: {e}")
        self.logger.info(f"Saved {len(bookings)} bookings")
        return OperationResult(True, f"Saved {len(bookings)} bookings.")

    def load(self, store: BookingStore) -> OperationResult:
        """
        Restore the ledger from a store and resynchronize slot occupancy
        In-memory state is untouched when the store cannot be read
        """
        try:
            bookings = store.load()
        except PersistenceError as e:
            self.logger.error(f"Error loading bookings: {e}", exc_info=True)
            return OperationResult(False, f"Error loading bookings: {e}")

        self.ledger.restore(bookings)
        for slot in self.registry:
            slot.release()
        for booking in self.ledger.all():
            if booking.status.holds_slot and booking.id is not None:
                if not self.registry.assign(booking.slot_id, booking.id):
                    self.logger.warning(
                        f"Loaded booking {booking.id} references unknown slot {booking.slot_id}"
                    )

        return OperationResult(True, f"Loaded {len(bookings)} bookings.")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _reject(self, message: str, booking: Optional[Booking] = None) -> OperationResult:
        self.logger.warning(message)
        return OperationResult(False, message, booking)

    def _publish(self, event: DomainEvent) -> None:
        if self.event_bus is not None:
            self.event_bus.publish(event)

    @staticmethod
    def _to_decimal(value: Optional[Union[Decimal, str, int, float]]) -> Optional[Decimal]:
        if value is None:
            return None
        if isinstance(value, Decimal):
            decimal_value = value
        else:
            try:
                decimal_value = Decimal(str(value).strip())
            except InvalidOperation:
                return None
        # NaN and Infinity are not amounts
        if not decimal_value.is_finite():
            return None
        return decimal_value
