"""
Enumerations shared by models and the billing engine.
"""

import enum


class UnitType(str, enum.Enum):
    RESIDENTIAL = "RESIDENTIAL"
    COMMERCIAL = "COMMERCIAL"


class UtilityType(str, enum.Enum):
    ELECTRIC = "ELECTRIC"
    WATER = "WATER"


class BillType(str, enum.Enum):
    REGULAR = "REGULAR"
    OPENING_BALANCE = "OPENING_BALANCE"  # Migrated legacy debt


class BillStatus(str, enum.Enum):
    """
    Bill status.

    DRAFT -> UNPAID -> {PARTIAL, PAID} -> OVERDUE
    DRAFT is only used for generation previews and is never persisted.
    """
    DRAFT = "DRAFT"
    UNPAID = "UNPAID"
    PARTIAL = "PARTIAL"
    PAID = "PAID"
    OVERDUE = "OVERDUE"


class PaymentStatus(str, enum.Enum):
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"


class AllocationStrategy(str, enum.Enum):
    OLDEST_FIRST = "OLDEST_FIRST"
    NEWEST_FIRST = "NEWEST_FIRST"
    MANUAL = "MANUAL"
    BY_COMPONENT = "BY_COMPONENT"  # Follow the payment's per-component amounts


class AdvanceTarget(str, enum.Enum):
    """Where overflow from a payment is credited."""
    DUES = "DUES"
    UTILITIES = "UTILITIES"
