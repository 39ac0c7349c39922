# File: smartpark/domain/strategies.py
"""
Strategy Pattern Implementation for SmartPark

Encapsulates the two algorithms the billing engine delegates:
1. Pricing Strategies - how a stay is turned into a fee
2. Allocation Strategies - which free slot a "reserve any" request receives

Each strategy is selected when the engine is built, so a different rate
model or allocation rule can be plugged in without touching the engine.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional
import logging

from .models import ParkingConfig, ParkingSlot, SlotType
from .registry import SlotRegistry

MILLIS_PER_MINUTE = 60_000
CENTS = Decimal('0.01')


@dataclass(frozen=True)
class FeeQuote:
    """Result of a fee calculation"""
    billed_minutes: int
    rate_per_minute: Decimal
    amount: Decimal
    slot_type: SlotType


# ============================================================================
# STRATEGY INTERFACES
# ============================================================================

class PricingStrategy(ABC):
    """
    Abstract base class for pricing strategies
    Defines the interface for fee calculation algorithms
    """

    def __init__(self, config: ParkingConfig):
        self.config = config
        self.logger = logging.getLogger(self.__class__.__name__)

    @abstractmethod
    def calculate_fee(self, slot_type: Optional[SlotType], duration_ms: int) -> FeeQuote:
        """
        Calculate the fee for a stay of duration_ms on a slot type
        Returns: FeeQuote
        """
        pass

    def get_strategy_name(self) -> str:
        return self.__class__.__name__.replace("Strategy", "")


class ParkingStrategy(ABC):
    """
    Abstract base class for slot allocation strategies
    """

    def __init__(self):
        self.logger = logging.getLogger(self.__class__.__name__)

    @abstractmethod
    def allocate_slot(self, registry: SlotRegistry) -> Optional[ParkingSlot]:
        """
        Pick a free slot from the registry
        Returns: ParkingSlot if one is free, None otherwise
        """
        pass

    def get_strategy_name(self) -> str:
        return self.__class__.__name__.replace("Strategy", "")


# ============================================================================
# PRICING STRATEGIES
# ============================================================================

class PerMinutePricingStrategy(PricingStrategy):
    """
    Strategy: per-minute billing by slot type
    - Duration is rounded UP to whole minutes
    - At least minimum_billable_minutes are charged, even for sub-minute stays
    - Unknown slot types are billed at the fallback type's rate
    """

    def billable_minutes(self, duration_ms: int) -> int:
        if duration_ms < 0:
            raise ValueError(f"Duration cannot be negative: {duration_ms} ms")
        minutes = -(-duration_ms // MILLIS_PER_MINUTE)
        return max(self.config.minimum_billable_minutes, minutes)

    def calculate_fee(self, slot_type: Optional[SlotType], duration_ms: int) -> FeeQuote:
        minutes = self.billable_minutes(duration_ms)
        effective_type = slot_type if slot_type in self.config.rates else self.config.fallback_slot_type
        rate = self.config.rate_for(effective_type)
        amount = (rate * minutes).quantize(CENTS, rounding=ROUND_HALF_UP)
        return FeeQuote(
            billed_minutes=minutes,
            rate_per_minute=rate,
            amount=amount,
            slot_type=effective_type,
        )


# ============================================================================
# ALLOCATION STRATEGIES
# ============================================================================

class FirstAvailableStrategy(ParkingStrategy):
    """
    Strategy: scan slots in registry order and take the first free one
    """

    def allocate_slot(self, registry: SlotRegistry) -> Optional[ParkingSlot]:
        slot = registry.first_available()
        if slot is None:
            self.logger.debug("No free slot in registry")
        return slot


class PreferredTypeStrategy(ParkingStrategy):
    """
    Strategy: first free slot of a preferred type
    Falls back to any free slot when fallback_to_any is set
    """

    def __init__(self, preferred_type: SlotType, fallback_to_any: bool = True):
        super().__init__()
        self.preferred_type = preferred_type
        self.fallback_to_any = fallback_to_any

    def allocate_slot(self, registry: SlotRegistry) -> Optional[ParkingSlot]:
        for slot in registry:
            if not slot.occupied and slot.slot_type == self.preferred_type:
                return slot
        if self.fallback_to_any:
            return registry.first_available()
        return None
