# File: smartpark/domain/registry.py
"""
Slot Registry

Holds the fixed inventory of parking slots. Slots are created once at
system setup, receive sequential 1-based ids, and are only ever mutated
through assign/release. The registry performs no availability checks of
its own: callers verify a slot is free before assigning it.
"""

from typing import List, Optional, Iterator
import logging

from .models import ParkingSlot, SlotType


class SlotRegistry:
    """Ordered collection of parking slots"""

    def __init__(self):
        self._slots: List[ParkingSlot] = []
        self.logger = logging.getLogger(self.__class__.__name__)

    def add_slot(self, slot_type: SlotType) -> ParkingSlot:
        """Append a slot with the next sequential id"""
        slot = ParkingSlot(len(self._slots) + 1, SlotType(slot_type))
        self._slots.append(slot)
        self.logger.debug(f"Added slot {slot.id} ({slot.slot_type.value})")
        return slot

    def add_slots(self, *slot_types: SlotType) -> List[ParkingSlot]:
        """Bulk variant of add_slot, preserving argument order"""
        return [self.add_slot(slot_type) for slot_type in slot_types]

    def find_by_id(self, slot_id: int) -> Optional[ParkingSlot]:
        for slot in self._slots:
            if slot.id == slot_id:
                return slot
        return None

    def first_available(self) -> Optional[ParkingSlot]:
        """First unoccupied slot in creation order"""
        for slot in self._slots:
            if not slot.occupied:
                return slot
        return None

    def assign(self, slot_id: int, booking_id: int) -> bool:
        """
        Bind a booking to a slot
        Returns: False if the slot does not exist
        """
        slot = self.find_by_id(slot_id)
        if slot is None:
            return False
        slot.assign(booking_id)
        return True

    def release(self, slot_id: int) -> bool:
        """
        Free a slot (idempotent)
        Returns: False if the slot does not exist
        """
        slot = self.find_by_id(slot_id)
        if slot is None:
            return False
        slot.release()
        return True

    def snapshot(self) -> List[ParkingSlot]:
        """Detached copies of all slots in creation order"""
        return [slot.copy() for slot in self._slots]

    @property
    def count(self) -> int:
        return len(self._slots)

    @property
    def occupied_count(self) -> int:
        return sum(1 for slot in self._slots if slot.occupied)

    def __iter__(self) -> Iterator[ParkingSlot]:
        return iter(list(self._slots))

    def __len__(self) -> int:
        return len(self._slots)
