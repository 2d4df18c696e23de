"""
Repository interfaces used by the billing services.
Services depend on these protocols only; SQLAlchemy implementations live in
repositories/sql.py.
"""

from datetime import date
from typing import List, Optional, Protocol

from condo_billing.models.billing import Bill
from condo_billing.models.enums import BillType, UtilityType
from condo_billing.models.payment import BillPayment, Payment, UnitAdvanceBalance
from condo_billing.models.unit import BillingAdjustment, MeterReading, TenantSettings, Unit


class UnitRepository(Protocol):
    def get(self, unit_id: int) -> Optional[Unit]: ...

    def lock(self, unit_id: int) -> Optional[Unit]:
        """Returns the unit locked until the transaction ends (serializes a unit's payments)."""
        ...

    def list_active(self, tenant_id: str) -> List[Unit]: ...


class ReadingRepository(Protocol):
    def get(self, unit_id: int, billing_month: str, utility: UtilityType) -> Optional[MeterReading]: ...


class AdjustmentRepository(Protocol):
    def get(self, unit_id: int, billing_month: str) -> Optional[BillingAdjustment]: ...

    def list_for_period(self, tenant_id: str, billing_month: str) -> List[BillingAdjustment]: ...

    def add(self, adjustment: BillingAdjustment) -> BillingAdjustment: ...

    def delete(self, adjustment: BillingAdjustment) -> None: ...


class SettingsRepository(Protocol):
    def get(self, tenant_id: str) -> Optional[TenantSettings]: ...


class BillRepository(Protocol):
    def get(self, bill_id: int) -> Optional[Bill]: ...

    def list_for_unit(self, unit_id: int, before_month: Optional[str] = None) -> List[Bill]: ...

    def list_outstanding(self, unit_id: int) -> List[Bill]: ...

    def get_opening_balance(self, unit_id: int) -> Optional[Bill]: ...

    def list_for_period(self, tenant_id: str, billing_month: str, bill_type: BillType) -> List[Bill]: ...

    def list_past_due(self, as_of: date, tenant_id: Optional[str] = None) -> List[Bill]: ...

    def last_bill_sequence(self, tenant_id: str) -> int: ...

    def add(self, bill: Bill) -> Bill: ...

    def delete(self, bill: Bill) -> None: ...


class PaymentRepository(Protocol):
    def get(self, payment_id: int) -> Optional[Payment]: ...

    def find_by_or_number(self, tenant_id: str, or_number: str) -> Optional[Payment]: ...

    def add(self, payment: Payment) -> Payment: ...

    def add_allocations(self, rows: List[BillPayment]) -> None: ...


class AdvanceBalanceRepository(Protocol):
    def get_for_unit(self, unit_id: int) -> Optional[UnitAdvanceBalance]: ...

    def list_with_credit(self, tenant_id: str) -> List[UnitAdvanceBalance]: ...

    def lock_for_unit(self, unit_id: int) -> UnitAdvanceBalance:
        """Returns the unit's row, created if missing, locked until the transaction ends."""
        ...
