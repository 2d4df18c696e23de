"""
SQLAlchemy implementations of the billing repositories.
"""

from dataclasses import dataclass
from datetime import date
from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from condo_billing.core.money import ZERO
from condo_billing.models.billing import Bill
from condo_billing.models.enums import BillStatus, BillType, UtilityType
from condo_billing.models.payment import BillPayment, Payment, UnitAdvanceBalance
from condo_billing.models.unit import BillingAdjustment, MeterReading, TenantSettings, Unit
from condo_billing.repositories.base import (
    AdjustmentRepository,
    AdvanceBalanceRepository,
    BillRepository,
    PaymentRepository,
    ReadingRepository,
    SettingsRepository,
    UnitRepository,
)
from condo_billing.services.billing.lifecycle import OUTSTANDING_STATUSES


class SqlUnitRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, unit_id: int) -> Optional[Unit]:
        return self.db.get(Unit, unit_id)

    def lock(self, unit_id: int) -> Optional[Unit]:
        # The unit row always exists, unlike its advance balance row
        return self.db.query(Unit).filter(Unit.id == unit_id).with_for_update().first()

    def list_active(self, tenant_id: str) -> List[Unit]:
        return self.db.query(Unit).filter(
            Unit.tenant_id == tenant_id,
            Unit.is_active.is_(True)
        ).order_by(Unit.unit_number).all()


class SqlReadingRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, unit_id: int, billing_month: str, utility: UtilityType) -> Optional[MeterReading]:
        return self.db.query(MeterReading).filter(
            MeterReading.unit_id == unit_id,
            MeterReading.billing_month == billing_month,
            MeterReading.utility == utility
        ).first()


class SqlAdjustmentRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, unit_id: int, billing_month: str) -> Optional[BillingAdjustment]:
        return self.db.query(BillingAdjustment).filter(
            BillingAdjustment.unit_id == unit_id,
            BillingAdjustment.billing_month == billing_month
        ).first()

    def list_for_period(self, tenant_id: str, billing_month: str) -> List[BillingAdjustment]:
        return self.db.query(BillingAdjustment).join(Unit, BillingAdjustment.unit_id == Unit.id).filter(
            Unit.tenant_id == tenant_id,
            BillingAdjustment.billing_month == billing_month
        ).order_by(Unit.unit_number).all()

    def add(self, adjustment: BillingAdjustment) -> BillingAdjustment:
        self.db.add(adjustment)
        self.db.flush()
        return adjustment

    def delete(self, adjustment: BillingAdjustment) -> None:
        self.db.delete(adjustment)
        self.db.flush()


class SqlSettingsRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, tenant_id: str) -> Optional[TenantSettings]:
        return self.db.query(TenantSettings).filter(TenantSettings.tenant_id == tenant_id).first()


class SqlBillRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, bill_id: int) -> Optional[Bill]:
        return self.db.get(Bill, bill_id)

    def list_for_unit(self, unit_id: int, before_month: Optional[str] = None) -> List[Bill]:
        query = self.db.query(Bill).filter(Bill.unit_id == unit_id)
        if before_month is not None:
            query = query.filter(Bill.billing_month < before_month)
        return query.order_by(Bill.billing_month, Bill.id).all()

    def list_outstanding(self, unit_id: int) -> List[Bill]:
        return self.db.query(Bill).filter(
            Bill.unit_id == unit_id,
            Bill.status.in_(OUTSTANDING_STATUSES),
            Bill.balance > 0
        ).order_by(Bill.billing_month, Bill.id).all()

    def get_opening_balance(self, unit_id: int) -> Optional[Bill]:
        return self.db.query(Bill).filter(
            Bill.unit_id == unit_id,
            Bill.bill_type == BillType.OPENING_BALANCE
        ).first()

    def list_for_period(self, tenant_id: str, billing_month: str, bill_type: BillType) -> List[Bill]:
        return self.db.query(Bill).join(Unit).filter(
            Unit.tenant_id == tenant_id,
            Bill.billing_month == billing_month,
            Bill.bill_type == bill_type
        ).order_by(Bill.id).all()

    def list_past_due(self, as_of: date, tenant_id: Optional[str] = None) -> List[Bill]:
        query = self.db.query(Bill).filter(
            Bill.status.in_([BillStatus.UNPAID, BillStatus.PARTIAL]),
            Bill.due_date < as_of
        )
        if tenant_id is not None:
            query = query.join(Unit).filter(Unit.tenant_id == tenant_id)
        return query.order_by(Bill.due_date, Bill.id).all()

    def last_bill_sequence(self, tenant_id: str) -> int:
        """
        Highest trailing sequence of the tenant's bill numbers ('MT-202512-0007' -> 7).
        Opening balance bills ('OB-<unit number>') are not part of the sequence.
        """
        numbers = self.db.query(Bill.bill_number).join(Unit).filter(
            Unit.tenant_id == tenant_id,
            Bill.bill_type == BillType.REGULAR,
            Bill.bill_number.isnot(None)
        ).all()
        sequences = [0]
        for (number,) in numbers:
            tail = number.rsplit("-", 1)[-1]
            if tail.isdigit():
                sequences.append(int(tail))
        return max(sequences)

    def add(self, bill: Bill) -> Bill:
        self.db.add(bill)
        self.db.flush()
        return bill

    def delete(self, bill: Bill) -> None:
        self.db.delete(bill)
        self.db.flush()


class SqlPaymentRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, payment_id: int) -> Optional[Payment]:
        return self.db.get(Payment, payment_id)

    def find_by_or_number(self, tenant_id: str, or_number: str) -> Optional[Payment]:
        return self.db.query(Payment).filter(
            Payment.tenant_id == tenant_id,
            Payment.or_number == or_number
        ).first()

    def add(self, payment: Payment) -> Payment:
        self.db.add(payment)
        self.db.flush()
        return payment

    def add_allocations(self, rows: List[BillPayment]) -> None:
        self.db.add_all(rows)


class SqlAdvanceBalanceRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_for_unit(self, unit_id: int) -> Optional[UnitAdvanceBalance]:
        return self.db.query(UnitAdvanceBalance).filter(UnitAdvanceBalance.unit_id == unit_id).first()

    def list_with_credit(self, tenant_id: str) -> List[UnitAdvanceBalance]:
        return self.db.query(UnitAdvanceBalance).join(Unit, UnitAdvanceBalance.unit_id == Unit.id).filter(
            Unit.tenant_id == tenant_id,
            or_(UnitAdvanceBalance.advance_dues > 0, UnitAdvanceBalance.advance_utilities > 0)
        ).order_by(Unit.unit_number).all()

    def lock_for_unit(self, unit_id: int) -> UnitAdvanceBalance:
        # SELECT ... FOR UPDATE; SQLite ignores it and serializes writers itself
        balance = self.db.query(UnitAdvanceBalance).filter(
            UnitAdvanceBalance.unit_id == unit_id
        ).with_for_update().first()
        if balance is None:
            balance = UnitAdvanceBalance(unit_id=unit_id, advance_dues=ZERO, advance_utilities=ZERO)
            self.db.add(balance)
            self.db.flush()
        return balance


@dataclass
class Repositories:
    """Repository set handed to the billing services."""
    units: UnitRepository
    readings: ReadingRepository
    adjustments: AdjustmentRepository
    settings: SettingsRepository
    bills: BillRepository
    payments: PaymentRepository
    advances: AdvanceBalanceRepository

    @classmethod
    def for_session(cls, db: Session) -> "Repositories":
        return cls(
            units=SqlUnitRepository(db),
            readings=SqlReadingRepository(db),
            adjustments=SqlAdjustmentRepository(db),
            settings=SqlSettingsRepository(db),
            bills=SqlBillRepository(db),
            payments=SqlPaymentRepository(db),
            advances=SqlAdvanceBalanceRepository(db),
        )
