"""
SQLAlchemy model for monthly unit bills.
Bills are built through services.billing.assembler.assemble_bill,
which derives total_amount, balance and status from the components.
"""

from sqlalchemy import (
    Column, String, Integer, Boolean, Numeric, Date, DateTime, Enum, ForeignKey,
    UniqueConstraint
)
from sqlalchemy.orm import relationship, validates

from condo_billing.core.database import Base
from condo_billing.core.errors import LockedBillError
from condo_billing.models.enums import BillType, BillStatus

# Charges added to the bill total
CHARGE_FIELDS = (
    "electric_amount",
    "water_amount",
    "dues_amount",
    "parking_fee",
    "sp_assessment",
    "penalty_amount",
    "other_charges",
)

# Credits subtracted from the bill total
CREDIT_FIELDS = (
    "discounts",
    "advance_dues_applied",
    "advance_util_applied",
)

COMPONENT_FIELDS = CHARGE_FIELDS + CREDIT_FIELDS


class Bill(Base):
    """Monthly bill of one unit (unit + billing_month is the natural key)."""
    __tablename__ = "bills"

    id = Column(Integer, primary_key=True, autoincrement=True)
    bill_number = Column(String(30), nullable=True, unique=True)  # e.g. 'MT-202512-0001'
    unit_id = Column(Integer, ForeignKey("units.id"), nullable=False, index=True)
    billing_month = Column(String(7), nullable=False)  # 'YYYY-MM'
    bill_type = Column(Enum(BillType), nullable=False, default=BillType.REGULAR)

    statement_date = Column(Date, nullable=True)
    due_date = Column(Date, nullable=True)

    # Charges
    electric_amount = Column(Numeric(12, 2), nullable=False, default=0)
    water_amount = Column(Numeric(12, 2), nullable=False, default=0)
    dues_amount = Column(Numeric(12, 2), nullable=False, default=0)
    parking_fee = Column(Numeric(12, 2), nullable=False, default=0)
    sp_assessment = Column(Numeric(12, 2), nullable=False, default=0)
    penalty_amount = Column(Numeric(12, 2), nullable=False, default=0)
    other_charges = Column(Numeric(12, 2), nullable=False, default=0)

    # Credits
    discounts = Column(Numeric(12, 2), nullable=False, default=0)
    advance_dues_applied = Column(Numeric(12, 2), nullable=False, default=0)
    advance_util_applied = Column(Numeric(12, 2), nullable=False, default=0)

    # Totals (derived)
    total_amount = Column(Numeric(12, 2), nullable=False, default=0)
    paid_amount = Column(Numeric(12, 2), nullable=False, default=0)
    balance = Column(Numeric(12, 2), nullable=False, default=0)
    status = Column(Enum(BillStatus), nullable=False, default=BillStatus.UNPAID)

    # Distribution lock (set when the statement is sent to the owner)
    is_locked = Column(Boolean, nullable=False, default=False)
    locked_at = Column(DateTime, nullable=True)

    remarks = Column(String(500), nullable=True)

    unit = relationship("Unit", back_populates="bills")
    bill_payments = relationship("BillPayment", back_populates="bill")

    __table_args__ = (
        UniqueConstraint("unit_id", "billing_month", "bill_type", name="uq_bill_unit_month_type"),
    )

    @validates(*COMPONENT_FIELDS, "total_amount")
    def _reject_when_locked(self, key, value):
        # Loading from the database does not pass through here, only assignment does
        if self.is_locked:
            raise LockedBillError(self.id)
        return value

    def __repr__(self):
        return (
            f"<Bill(id={self.id}, unit_id={self.unit_id}, month='{self.billing_month}', "
            f"total={self.total_amount}, paid={self.paid_amount}, status='{self.status}')>"
        )
