# File: smartpark/application/dtos.py
"""
Data Transfer Objects (DTOs) for SmartPark

Read-only views handed to the presentation layer. DTOs are built from
domain entities (from_attributes) so callers never hold a reference to
a live slot or booking.
"""

from decimal import Decimal
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict

from ..domain.models import SlotType, BookingStatus, UserRole


class BaseDTO(BaseModel):
    """Base DTO with common functionality"""

    model_config = ConfigDict(
        from_attributes=True,
        frozen=True,
        use_enum_values=True,
    )

    def to_dict(self, exclude_none: bool = False) -> Dict[str, Any]:
        """Convert DTO to dictionary"""
        return self.model_dump(exclude_none=exclude_none)


class SlotDTO(BaseDTO):
    """Slot row for the live status screen"""
    id: int
    slot_type: SlotType
    occupied: bool
    current_booking_id: Optional[int] = None

    @property
    def status(self) -> str:
        return "OCCUPIED" if self.occupied else "FREE"


class BookingDTO(BaseDTO):
    """Booking row for history and receipts"""
    id: Optional[int] = None
    username: str
    slot_id: int
    status: BookingStatus
    amount: Optional[Decimal] = None
    creation_time: int = 0
    entry_time: int = 0
    exit_time: int = 0

    @property
    def amount_display(self) -> str:
        return "pending" if self.amount is None else f"${self.amount:.2f}"


class FeeDTO(BaseDTO):
    """Per-minute rate for one slot type"""
    slot_type: SlotType
    rate_per_minute: Decimal
    currency: str = "USD"


class UserDTO(BaseDTO):
    """Public view of an account (no password)"""
    user_id: Optional[int] = None
    username: str
    role: UserRole
