# File: smartpark/infrastructure/repositories.py
"""
SQLAlchemy storage backend for the booking ledger

An alternative to the flat file with the same save/load contract. The
whole ledger is written as one snapshot: save() replaces the table
contents inside a single transaction, load() returns rows in the order
they were saved.
"""

from decimal import Decimal
from typing import Callable, List, Optional
import logging

from sqlalchemy import (
    create_engine, Column, Integer, BigInteger, String, DECIMAL, delete, select
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker, Session

from ..application.billing_engine import BookingStore, PersistenceError
from ..domain.models import Booking, BookingStatus


# ============================================================================
# SQLALCHEMY ORM MODELS
# ============================================================================

Base = declarative_base()


class BookingModel(Base):
    """SQLAlchemy model for Booking"""
    __tablename__ = 'bookings'

    row_id = Column(Integer, primary_key=True, autoincrement=True)
    booking_id = Column(Integer, nullable=True, index=True)
    username = Column(String(100), nullable=False, default="")
    slot_id = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False)
    amount = Column(DECIMAL(12, 2), nullable=True)
    creation_time = Column(BigInteger, nullable=False, default=0)
    entry_time = Column(BigInteger, nullable=False, default=0)
    exit_time = Column(BigInteger, nullable=False, default=0)


# ============================================================================
# MAPPER
# ============================================================================

class Mapper:
    """Maps between domain bookings and ORM rows"""

    @staticmethod
    def booking_to_orm(booking: Booking) -> BookingModel:
        return BookingModel(
            booking_id=booking.id,
            username=booking.username or "",
            slot_id=booking.slot_id,
            status=booking.status.value,
            amount=booking.amount,
            creation_time=booking.creation_time,
            entry_time=booking.entry_time,
            exit_time=booking.exit_time,
        )

    @staticmethod
    def booking_to_domain(model: BookingModel) -> Booking:
        amount: Optional[Decimal] = None
        if model.amount is not None:
            amount = Decimal(str(model.amount))
        return Booking(
            username=model.username,
            slot_id=model.slot_id,
            id=model.booking_id,
            status=BookingStatus(model.status),
            amount=amount,
            creation_time=model.creation_time or 0,
            entry_time=model.entry_time or 0,
            exit_time=model.exit_time or 0,
        )


# ============================================================================
# SQLALCHEMY BOOKING STORE
# ============================================================================

class SQLAlchemyBookingStore(BookingStore):
    """Booking store backed by a relational database"""

    def __init__(self, database_url: str = "sqlite:///smartpark.db", echo: bool = False):
        self.database_url = database_url
        self._logger = logging.getLogger(self.__class__.__name__)
        try:
            self.engine = create_engine(database_url, echo=echo)
            Base.metadata.create_all(bind=self.engine)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Cannot open database {database_url}: {e}") from e
        self.session_factory: Callable[[], Session] = sessionmaker(
            autocommit=False, autoflush=False, bind=self.engine
        )

    def save(self, bookings: List[Booking]) -> None:
        session = self.session_factory()
        try:
            session.execute(delete(BookingModel))
            session.add_all([Mapper.booking_to_orm(b) for b in bookings])
            session.commit()
            self._logger.debug(f"Committed snapshot of {len(bookings)} bookings")
        except SQLAlchemyError as e:
            session.rollback()
            self._logger.error(f"Database error saving bookings: {e}")
            raise PersistenceError(f"Cannot save bookings: {e}") from e
        finally:
            session.close()

    def load(self) -> List[Booking]:
        session = self.session_factory()
        try:
            models = session.scalars(select(BookingModel).order_by(BookingModel.row_id)).all()
            bookings = []
            for model in models:
                try:
                    bookings.append(Mapper.booking_to_domain(model))
                except ValueError as e:
                    self._logger.debug(f"Skipping row {model.row_id}: {e}")
            return bookings
        except SQLAlchemyError as e:
            self._logger.error(f"Database error loading bookings: {e}")
            raise PersistenceError(f"Cannot load bookings: {e}") from e
        finally:
            session.close()

    def dispose(self) -> None:
        self.engine.dispose()
