"""
Database models - exports all models.
"""

from condo_billing.models.enums import (
    UnitType,
    UtilityType,
    BillType,
    BillStatus,
    PaymentStatus,
    AllocationStrategy,
    AdvanceTarget,
)
from condo_billing.models.unit import Unit, TenantSettings, MeterReading, BillingAdjustment
from condo_billing.models.billing import Bill
from condo_billing.models.payment import Payment, BillPayment, UnitAdvanceBalance

__all__ = [
    "UnitType",
    "UtilityType",
    "BillType",
    "BillStatus",
    "PaymentStatus",
    "AllocationStrategy",
    "AdvanceTarget",
    "Unit",
    "TenantSettings",
    "MeterReading",
    "BillingAdjustment",
    "Bill",
    "Payment",
    "BillPayment",
    "UnitAdvanceBalance",
]
