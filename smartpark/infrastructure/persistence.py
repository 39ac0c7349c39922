# File: smartpark/infrastructure/persistence.py
"""
Flat-file persistence for the booking ledger

File format: comma-separated text with a fixed 8-column header row

    bookingId,username,slotId,status,amount,creationTime,entryTime,exitTime

An empty bookingId or amount means "unset". Timestamps are epoch
milliseconds, 0 meaning unset. Rows are read leniently: surrounding
whitespace is ignored, and a row with the wrong column count or an
unparsable integer, decimal or status is dropped without aborting the load.
"""

from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import List, Optional, Sequence, Union
import csv
import logging

from ..application.billing_engine import BookingStore, PersistenceError
from ..domain.models import Booking, BookingStatus

HEADER = (
    "bookingId", "username", "slotId", "status",
    "amount", "creationTime", "entryTime", "exitTime",
)


class MalformedRowError(ValueError):
    """A persisted row could not be turned into a booking"""
    pass


def booking_to_row(booking: Booking) -> List[str]:
    """Serialize a booking into the 8 storage columns"""
    return [
        "" if booking.id is None else str(booking.id),
        booking.username or "",
        str(booking.slot_id),
        booking.status.value,
        "" if booking.amount is None else str(booking.amount),
        str(booking.creation_time),
        str(booking.entry_time),
        str(booking.exit_time),
    ]


def row_to_booking(row: Sequence[str]) -> Booking:
    """
    Parse 8 storage columns into a booking
    Raises: MalformedRowError for any unparsable field
    """
    if len(row) != len(HEADER):
        raise MalformedRowError(f"Expected {len(HEADER)} columns, got {len(row)}")

    fields = [value.strip() for value in row]
    try:
        booking_id = int(fields[0]) if fields[0] else None
        slot_id = int(fields[2])
        status = BookingStatus(fields[3].upper())
        amount = Decimal(fields[4]) if fields[4] else None
        creation_time = int(fields[5]) if fields[5] else 0
        entry_time = int(fields[6]) if fields[6] else 0
        exit_time = int(fields[7]) if fields[7] else 0
    except (ValueError, InvalidOperation) as e:
        raise MalformedRowError(str(e)) from e

    if amount is not None and not amount.is_finite():
        raise MalformedRowError(f"Amount is not a finite number: {fields[4]}")

    return Booking(
        username=fields[1],
        slot_id=slot_id,
        id=booking_id,
        status=status,
        amount=amount,
        creation_time=creation_time,
        entry_time=entry_time,
        exit_time=exit_time,
    )


class FlatFileBookingStore(BookingStore):
    """Reads and writes the ledger as a delimited text file"""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self.logger = logging.getLogger(self.__class__.__name__)

    def save(self, bookings: List[Booking]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("w", newline="", encoding="utf-8") as fh:
                writer = csv.writer(fh)
                writer.writerow(HEADER)
                for booking in bookings:
                    writer.writerow(booking_to_row(booking))
        except OSError as e:
            raise PersistenceError(f"Cannot write {self.path}: {e}") from e

        self.logger.info(f"Wrote {len(bookings)} bookings to {self.path}")

    def load(self) -> List[Booking]:
        """
        Load bookings from the file
        A missing file is created empty and yields no bookings
        """
        try:
            if not self.path.exists():
                self.path.parent.mkdir(parents=True, exist_ok=True)
                self.path.touch()
                self.logger.info(f"Created empty booking file {self.path}")
                return []

            with self.path.open("r", newline="", encoding="utf-8") as fh:
                return self._parse(csv.reader(fh))
        except (OSError, UnicodeDecodeError, csv.Error) as e:
            raise PersistenceError(f"Cannot read {self.path}: {e}") from e

    def _parse(self, reader) -> List[Booking]:
        bookings = []
        skipped = 0

        for line_number, row in enumerate(reader, start=1):
            if not row or not "".join(row).strip():
                continue
            if line_number == 1 and row[0].strip() == HEADER[0]:
                continue

            booking = self._parse_row(row, line_number)
            if booking is None:
                skipped += 1
                continue
            bookings.append(booking)

        if skipped:
            self.logger.debug(f"Skipped {skipped} malformed rows in {self.path}")
        self.logger.info(f"Read {len(bookings)} bookings from {self.path}")
        return bookings

    def _parse_row(self, row: Sequence[str], line_number: int) -> Optional[Booking]:
        try:
            return row_to_booking(row)
        except MalformedRowError as e:
            self.logger.debug(f"Line {line_number}: {e}")
            return None
