# File: smartpark/domain/ledger.py
"""
Booking Ledger

Exclusive owner of every booking ever created. Booking ids are sequential,
start at 1 and are never reused, not even after a cancellation.
"""

from typing import Iterable, List, Optional
import logging

from .models import Booking, BookingStatus


class BookingLedger:
    """Append-only store of bookings with sequential ids"""

    def __init__(self):
        self._bookings: List[Booking] = []
        self._next_booking_id = 1
        self.logger = logging.getLogger(self.__class__.__name__)

    @property
    def next_booking_id(self) -> int:
        return self._next_booking_id

    def create_booking(self, username: str, slot_id: int, now: int) -> Booking:
        """
        Create a PENDING booking with the next id
        Entry and exit times start unset (0) and no amount is due yet
        """
        booking = Booking(
            username=username,
            slot_id=slot_id,
            id=self._next_booking_id,
            status=BookingStatus.PENDING,
            creation_time=now,
        )
        self._next_booking_id += 1
        self._bookings.append(booking)
        self.logger.debug(f"Created booking {booking.id} for {username} on slot {slot_id}")
        return booking

    def find_by_id(self, booking_id: Optional[int]) -> Optional[Booking]:
        if booking_id is None:
            return None
        for booking in self._bookings:
            if booking.id is not None and booking.id == booking_id:
                return booking
        return None

    def find_by_username(self, username: str) -> List[Booking]:
        return [b for b in self._bookings if b.username == username]

    def find_by_status(self, status: BookingStatus) -> List[Booking]:
        return [b for b in self._bookings if b.status == status]

    def all(self) -> List[Booking]:
        """All bookings in insertion order"""
        return list(self._bookings)

    def restore(self, bookings: Iterable[Booking]) -> None:
        """
        Replace the ledger contents with loaded bookings
        The id counter resumes after the highest loaded id
        """
        self._bookings = list(bookings)
        max_id = max((b.id for b in self._bookings if b.id is not None), default=0)
        self._next_booking_id = max_id + 1
        self.logger.info(
            f"Restored {len(self._bookings)} bookings, next booking id {self._next_booking_id}"
        )

    def __len__(self) -> int:
        return len(self._bookings)
