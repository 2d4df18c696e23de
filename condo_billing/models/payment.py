"""
SQLAlchemy models for payments.
Defines tables: payments, bill_payments, unit_advance_balances.
"""

from sqlalchemy import (
    Column, String, Integer, Numeric, Date, Enum, ForeignKey, UniqueConstraint
)
from sqlalchemy.orm import relationship

from condo_billing.core.database import Base
from condo_billing.models.enums import BillStatus, PaymentStatus, AllocationStrategy, AdvanceTarget


class Payment(Base):
    """
    Payment received from a unit owner.

    The component amounts are allocation hints; advance_dues_amount and
    advance_util_amount are explicit advances that never touch bills.
    advance_*_created record the exact credit this payment added to the
    unit's advance balance, so that a void can take back exactly that.
    """
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(String(50), nullable=False, index=True)
    unit_id = Column(Integer, ForeignKey("units.id"), nullable=False, index=True)
    or_number = Column(String(50), nullable=True)  # Official receipt number
    payment_date = Column(Date, nullable=False)
    payment_method = Column(String(30), nullable=True)  # CASH, CHECK, BANK_TRANSFER, ...

    # Allocation hints
    electric_amount = Column(Numeric(12, 2), nullable=False, default=0)
    water_amount = Column(Numeric(12, 2), nullable=False, default=0)
    dues_amount = Column(Numeric(12, 2), nullable=False, default=0)
    penalty_amount = Column(Numeric(12, 2), nullable=False, default=0)
    sp_assessment_amount = Column(Numeric(12, 2), nullable=False, default=0)

    # Explicit advances
    advance_dues_amount = Column(Numeric(12, 2), nullable=False, default=0)
    advance_util_amount = Column(Numeric(12, 2), nullable=False, default=0)

    total_amount = Column(Numeric(12, 2), nullable=False)
    strategy = Column(Enum(AllocationStrategy), nullable=False, default=AllocationStrategy.OLDEST_FIRST)
    advance_target = Column(Enum(AdvanceTarget), nullable=False, default=AdvanceTarget.DUES)

    # Credit actually added to UnitAdvanceBalance (explicit + overflow)
    advance_dues_created = Column(Numeric(12, 2), nullable=False, default=0)
    advance_util_created = Column(Numeric(12, 2), nullable=False, default=0)

    status = Column(Enum(PaymentStatus), nullable=False, default=PaymentStatus.CONFIRMED)
    remarks = Column(String(500), nullable=True)

    unit = relationship("Unit", back_populates="payments")
    bill_payments = relationship("BillPayment", back_populates="payment", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint("tenant_id", "or_number", name="uq_payment_tenant_or_number"),
    )


class BillPayment(Base):
    """Portion of one payment applied to one bill."""
    __tablename__ = "bill_payments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    payment_id = Column(Integer, ForeignKey("payments.id"), nullable=False, index=True)
    bill_id = Column(Integer, ForeignKey("bills.id"), nullable=False, index=True)

    electric_amount = Column(Numeric(12, 2), nullable=False, default=0)
    water_amount = Column(Numeric(12, 2), nullable=False, default=0)
    dues_amount = Column(Numeric(12, 2), nullable=False, default=0)  # Dues and parking
    sp_assessment_amount = Column(Numeric(12, 2), nullable=False, default=0)
    penalty_amount = Column(Numeric(12, 2), nullable=False, default=0)
    other_amount = Column(Numeric(12, 2), nullable=False, default=0)
    total_amount = Column(Numeric(12, 2), nullable=False)
    bill_status_before = Column(Enum(BillStatus), nullable=True)  # Bill status before this row was applied

    payment = relationship("Payment", back_populates="bill_payments")
    bill = relationship("Bill", back_populates="bill_payments")


class UnitAdvanceBalance(Base):
    """Running advance credit of a unit (current balance only)."""
    __tablename__ = "unit_advance_balances"

    id = Column(Integer, primary_key=True, autoincrement=True)
    unit_id = Column(Integer, ForeignKey("units.id"), unique=True, nullable=False)
    advance_dues = Column(Numeric(12, 2), nullable=False, default=0)
    advance_utilities = Column(Numeric(12, 2), nullable=False, default=0)

    unit = relationship("Unit", back_populates="advance_balance")
