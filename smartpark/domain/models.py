# File: smartpark/domain/models.py
"""
Domain Models for the SmartPark reservation and billing system

This module contains:
1. Enums: slot types, booking statuses and user roles
2. Value Objects: ParkingConfig and Actor (immutable, validated)
3. Entities: ParkingSlot, Booking and User (identity + lifecycle)
4. Domain Events: records of booking lifecycle transitions

Timestamps are epoch milliseconds. A value of 0 means "unset" for the
entry and exit times of a booking.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any, Mapping, Tuple
from datetime import datetime
from decimal import Decimal
from types import MappingProxyType
from enum import Enum
import uuid


# ============================================================================
# ENUMS FOR DOMAIN TYPES
# ============================================================================

class SlotType(Enum):
    """
    Enumeration of parking slot types
    Each type is billed at its own per-minute rate
    """
    COMPACT = "COMPACT"
    REGULAR = "REGULAR"
    LARGE = "LARGE"
    HANDICAPPED = "HANDICAPPED"

    def __str__(self) -> str:
        return self.value.title()


class BookingStatus(Enum):
    """
    Enumeration of booking statuses

    PENDING   - reserved, vehicle has not arrived yet
    ACTIVE    - vehicle is parked inside
    CANCELLED - reservation expired before arrival
    COMPLETED - vehicle left and the fee was computed
    """
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"

    @property
    def is_terminal(self) -> bool:
        """No transition leaves a terminal status"""
        return self in (BookingStatus.CANCELLED, BookingStatus.COMPLETED)

    @property
    def holds_slot(self) -> bool:
        """Check if a booking in this status keeps its slot assigned"""
        return self in (BookingStatus.PENDING, BookingStatus.ACTIVE)

    def __str__(self) -> str:
        return self.value


class UserRole(Enum):
    """
    Enumeration of user roles

    ADMIN     - full access (staff accounts, save/load)
    ATTENDANT - gate operations and payments
    USER      - reservations and own history
    """
    ADMIN = "ADMIN"
    ATTENDANT = "ATTENDANT"
    USER = "USER"

    @property
    def is_staff(self) -> bool:
        return self in (UserRole.ADMIN, UserRole.ATTENDANT)

    def __str__(self) -> str:
        return self.value


# ============================================================================
# VALUE OBJECTS
# ============================================================================

DEFAULT_RATES: Dict[SlotType, Decimal] = {
    SlotType.COMPACT: Decimal('7.0'),
    SlotType.REGULAR: Decimal('10.0'),
    SlotType.LARGE: Decimal('20.0'),
    SlotType.HANDICAPPED: Decimal('5.0'),
}

DEFAULT_SLOT_LAYOUT: Tuple[SlotType, ...] = (
    SlotType.COMPACT,
    SlotType.REGULAR,
    SlotType.LARGE,
    SlotType.HANDICAPPED,
)


@dataclass(frozen=True)
class ParkingConfig:
    """
    Value Object: immutable configuration held by the billing engine
    Replaces ambient constants (rates, timeout, fallback slot type)
    """
    rates: Mapping[SlotType, Decimal] = field(default_factory=lambda: dict(DEFAULT_RATES))
    fallback_slot_type: SlotType = SlotType.REGULAR
    booking_timeout_ms: int = 60_000
    minimum_billable_minutes: int = 1
    currency: str = "USD"
    slot_layout: Tuple[SlotType, ...] = DEFAULT_SLOT_LAYOUT

    def __post_init__(self):
        """Validate configuration and freeze the rate table"""
        rates = {SlotType(k): Decimal(str(v)) for k, v in dict(self.rates).items()}

        missing = [t for t in SlotType if t not in rates]
        if missing:
            raise ValueError(f"Missing per-minute rate for: {', '.join(t.value for t in missing)}")

        for slot_type, rate in rates.items():
            if rate < Decimal('0'):
                raise ValueError(f"Rate for {slot_type.value} cannot be negative: {rate}")

        if self.booking_timeout_ms <= 0:
            raise ValueError("Booking timeout must be positive")

        if self.minimum_billable_minutes < 1:
            raise ValueError("Minimum billable minutes must be at least 1")

        if len(self.currency) != 3:
            raise ValueError(f"Currency must be 3-letter code: {self.currency}")

        object.__setattr__(self, 'rates', MappingProxyType(rates))
        object.__setattr__(self, 'slot_layout', tuple(SlotType(t) for t in self.slot_layout))

    def rate_for(self, slot_type: Optional[SlotType]) -> Decimal:
        """Per-minute rate for a slot type, fallback type's rate when unknown"""
        if slot_type is None or slot_type not in self.rates:
            return self.rates[self.fallback_slot_type]
        return self.rates[slot_type]


@dataclass(frozen=True)
class Actor:
    """
    Value Object: authenticated identity supplied by the session layer
    The core never authenticates, it only needs a name and a role
    """
    username: str
    role: UserRole = UserRole.USER

    @property
    def is_valid(self) -> bool:
        return bool(self.username and self.username.strip())

    def __str__(self) -> str:
        return f"{self.username} [{self.role}]"


# ============================================================================
# DOMAIN ENTITIES
# ============================================================================

class ParkingSlot:
    """
    Entity: a physical parking space
    Identity is the 1-based slot id assigned at creation
    """

    def __init__(self, id: int, slot_type: SlotType):
        if id <= 0:
            raise ValueError("Slot id must be positive")
        self.id = id
        self.slot_type = slot_type
        self.occupied = False
        self.current_booking_id: Optional[int] = None

    def assign(self, booking_id: int) -> None:
        """Mark the slot as held by a booking"""
        self.occupied = True
        self.current_booking_id = booking_id

    def release(self) -> None:
        """Free the slot"""
        self.occupied = False
        self.current_booking_id = None

    def copy(self) -> 'ParkingSlot':
        clone = ParkingSlot(self.id, self.slot_type)
        clone.occupied = self.occupied
        clone.current_booking_id = self.current_booking_id
        return clone

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization"""
        return {
            "id": self.id,
            "slot_type": self.slot_type.value,
            "occupied": self.occupied,
            "current_booking_id": self.current_booking_id,
        }

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ParkingSlot):
            return False
        return self.to_dict() == other.to_dict()

    def __repr__(self) -> str:
        return f"ParkingSlot(id={self.id}, type={self.slot_type.value}, occupied={self.occupied})"

    def __str__(self) -> str:
        status = "OCCUPIED" if self.occupied else "FREE"
        return f"Slot {self.id} - {self.slot_type} - {status}"


class Booking:
    """
    Entity: one reservation / parking session for one slot

    Lifecycle: PENDING -> ACTIVE -> COMPLETED, or PENDING -> CANCELLED.
    The id is assigned by the ledger and never reused.
    """

    def __init__(
        self,
        username: str,
        slot_id: int,
        id: Optional[int] = None,
        status: BookingStatus = BookingStatus.PENDING,
        amount: Optional[Decimal] = None,
        creation_time: int = 0,
        entry_time: int = 0,
        exit_time: int = 0
    ):
        self.id = id
        self.username = username
        self.slot_id = slot_id
        self.status = status
        self.amount = amount
        self.creation_time = creation_time
        self.entry_time = entry_time
        self.exit_time = exit_time

    @property
    def has_entered(self) -> bool:
        return self.entry_time > 0

    def age_ms(self, now: int) -> int:
        """Milliseconds since the booking was created"""
        return now - self.creation_time

    def as_tuple(self) -> Tuple[Any, ...]:
        """Persistent fields in storage column order"""
        return (
            self.id, self.username, self.slot_id, self.status,
            self.amount, self.creation_time, self.entry_time, self.exit_time
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization"""
        return {
            "id": self.id,
            "username": self.username,
            "slot_id": self.slot_id,
            "status": self.status.value,
            "amount": str(self.amount) if self.amount is not None else None,
            "creation_time": self.creation_time,
            "entry_time": self.entry_time,
            "exit_time": self.exit_time,
        }

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Booking):
            return False
        return self.as_tuple() == other.as_tuple()

    def __repr__(self) -> str:
        return f"Booking(id={self.id}, slot_id={self.slot_id}, status={self.status.value})"

    def __str__(self) -> str:
        id_str = "unassigned" if self.id is None else str(self.id)
        amount_str = "pending" if self.amount is None else f"${self.amount:.2f}"
        user_str = self.username or "unknown"
        return (f"Booking[id={id_str}, user={user_str}, slot={self.slot_id}, "
                f"status={self.status.value}, amount={amount_str}]")


class User:
    """
    Entity: registered account with a role and a booking history
    History holds booking ids only, the ledger owns the bookings
    """

    def __init__(
        self,
        username: str,
        password: str = "",
        role: UserRole = UserRole.USER,
        user_id: Optional[int] = None
    ):
        self.user_id = user_id
        self.username = username
        self.password = password
        self.role = role
        self._booking_ids: List[int] = []

    def check_password(self, attempt: Optional[str]) -> bool:
        if self.password is None:
            return attempt is None
        return self.password == attempt

    def add_booking_id(self, *booking_ids: int) -> None:
        self._booking_ids.extend(booking_ids)

    def remove_booking_id(self, booking_id: int) -> bool:
        if booking_id in self._booking_ids:
            self._booking_ids.remove(booking_id)
            return True
        return False

    @property
    def booking_ids(self) -> List[int]:
        return list(self._booking_ids)

    def as_actor(self) -> Actor:
        return Actor(self.username, self.role)

    def __repr__(self) -> str:
        id_str = "unassigned" if self.user_id is None else str(self.user_id)
        return f"User[id={id_str}, username={self.username}, role={self.role}]"


# ============================================================================
# DOMAIN EVENTS
# ============================================================================

class DomainEvent(ABC):
    """
    Base class for all domain events
    Events represent something that happened to a booking
    """

    event_type = "domain_event"

    def __init__(self, booking_id: Optional[int], timestamp: Optional[datetime] = None):
        self.event_id = str(uuid.uuid4())
        self.booking_id = booking_id
        self.timestamp = timestamp or datetime.now()
        self.version = "1.0"

    @abstractmethod
    def data(self) -> Dict[str, Any]:
        """Event specific payload"""
        pass

    def to_dict(self) -> Dict[str, Any]:
        """Convert event to dictionary for serialization"""
        return {
            "event_type": self.event_type,
            "event_id": self.event_id,
            "timestamp": self.timestamp.isoformat(),
            "version": self.version,
            "data": dict(self.data(), booking_id=self.booking_id),
        }

    def __str__(self) -> str:
        return f"{self.__class__.__name__}(booking={self.booking_id}) at {self.timestamp}"


class BookingCreatedEvent(DomainEvent):
    """Event raised when a slot is reserved"""

    event_type = "booking.created"

    def __init__(self, booking_id: int, username: str, slot_id: int):
        super().__init__(booking_id)
        self.username = username
        self.slot_id = slot_id

    def data(self) -> Dict[str, Any]:
        return {"username": self.username, "slot_id": self.slot_id}


class VehicleEnteredEvent(DomainEvent):
    """Event raised when an attendant marks a vehicle entry"""

    event_type = "vehicle.entered"

    def __init__(self, booking_id: int, slot_id: int, entry_time: int):
        super().__init__(booking_id)
        self.slot_id = slot_id
        self.entry_time = entry_time

    def data(self) -> Dict[str, Any]:
        return {"slot_id": self.slot_id, "entry_time": self.entry_time}


class VehicleExitedEvent(DomainEvent):
    """Event raised when a vehicle leaves and the fee is computed"""

    event_type = "vehicle.exited"

    def __init__(
        self,
        booking_id: int,
        slot_id: int,
        entry_time: int,
        exit_time: int,
        billed_minutes: int,
        amount: Decimal
    ):
        super().__init__(booking_id)
        self.slot_id = slot_id
        self.entry_time = entry_time
        self.exit_time = exit_time
        self.billed_minutes = billed_minutes
        self.amount = amount

    def data(self) -> Dict[str, Any]:
        return {
            "slot_id": self.slot_id,
            "entry_time": self.entry_time,
            "exit_time": self.exit_time,
            "billed_minutes": self.billed_minutes,
            "amount": str(self.amount),
        }


class BookingExpiredEvent(DomainEvent):
    """Event raised when a pending booking times out"""

    event_type = "booking.expired"

    def __init__(self, booking_id: int, slot_id: int, age_ms: int):
        super().__init__(booking_id)
        self.slot_id = slot_id
        self.age_ms = age_ms

    def data(self) -> Dict[str, Any]:
        return {"slot_id": self.slot_id, "age_ms": self.age_ms}


class PaymentAcceptedEvent(DomainEvent):
    """Event raised when a payment for a completed booking is accepted"""

    event_type = "payment.accepted"

    def __init__(self, booking_id: int, paid: Decimal, due: Optional[Decimal]):
        super().__init__(booking_id)
        self.paid = paid
        self.due = due

    def data(self) -> Dict[str, Any]:
        return {
            "paid": str(self.paid),
            "due": str(self.due) if self.due is not None else None,
        }
