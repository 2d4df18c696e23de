"""
API endpoints for payments.
All endpoints have prefix /api/payments/
"""

from datetime import date
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from condo_billing.api.errors import http_error
from condo_billing.api.routes.billing import bill_to_dict
from condo_billing.core.database import get_db
from condo_billing.core.errors import BillingError
from condo_billing.core.money import format_money, money_sum
from condo_billing.models.enums import AdvanceTarget, AllocationStrategy
from condo_billing.models.unit import Unit
from condo_billing.services.billing.allocation import ManualAllocation
from condo_billing.services.payments.manager import PaymentManager

router = APIRouter(prefix="/api/payments", tags=["payments"])


class ManualAllocationItem(BaseModel):
    bill_id: int
    electric: Decimal = Decimal("0")
    water: Decimal = Decimal("0")
    dues: Decimal = Decimal("0")
    sp_assessment: Decimal = Decimal("0")
    penalty: Decimal = Decimal("0")
    other: Decimal = Decimal("0")


class PaymentCreate(BaseModel):
    """Model for recording a payment."""
    unit_id: int
    total_amount: Decimal
    payment_date: date
    or_number: Optional[str] = None
    payment_method: Optional[str] = None
    strategy: AllocationStrategy = AllocationStrategy.OLDEST_FIRST
    advance_target: AdvanceTarget = AdvanceTarget.DUES
    manual_allocations: Optional[List[ManualAllocationItem]] = None
    # Per-component amounts (used by BY_COMPONENT)
    electric_amount: Decimal = Decimal("0")
    water_amount: Decimal = Decimal("0")
    dues_amount: Decimal = Decimal("0")
    penalty_amount: Decimal = Decimal("0")
    sp_assessment_amount: Decimal = Decimal("0")
    # Explicit advances (never applied to bills)
    advance_dues_amount: Decimal = Decimal("0")
    advance_util_amount: Decimal = Decimal("0")
    remarks: Optional[str] = None


@router.post("/")
def create_payment(payment: PaymentCreate, db: Session = Depends(get_db)):
    """Records a payment and allocates it to the unit's outstanding bills."""
    if db.get(Unit, payment.unit_id) is None:
        raise HTTPException(status_code=404, detail="Unit not found")

    manual = None
    if payment.manual_allocations is not None:
        manual = [ManualAllocation(**item.model_dump()) for item in payment.manual_allocations]

    try:
        receipt = PaymentManager(db).record_payment(
            unit_id=payment.unit_id,
            total_amount=payment.total_amount,
            payment_date=payment.payment_date,
            or_number=payment.or_number,
            payment_method=payment.payment_method,
            strategy=payment.strategy,
            advance_target=payment.advance_target,
            manual=manual,
            hints={
                "electric": payment.electric_amount,
                "water": payment.water_amount,
                "dues": payment.dues_amount,
                "penalty": payment.penalty_amount,
                "sp_assessment": payment.sp_assessment_amount,
            },
            advance_dues_amount=payment.advance_dues_amount,
            advance_util_amount=payment.advance_util_amount,
            remarks=payment.remarks,
        )
    except BillingError as e:
        raise http_error(e)

    summary = receipt.summary()
    return {
        "id": receipt.payment.id,
        "or_number": receipt.payment.or_number,
        "status": receipt.payment.status.value,
        "total_amount": format_money(receipt.payment.total_amount),
        "advance_dues_created": format_money(receipt.payment.advance_dues_created),
        "advance_util_created": format_money(receipt.payment.advance_util_created),
        "summary": {key: format_money(value) if isinstance(value, Decimal) else value
                    for key, value in summary.items()},
        "allocations": [
            {
                "bill_id": item.bill_id,
                "billing_month": item.billing_month,
                "amount": format_money(item.total_amount),
                "components": {name: format_money(value) for name, value in item.components.items()},
                "remaining_balance": format_money(item.remaining_balance),
            }
            for item in receipt.allocation.allocations
        ],
    }


@router.delete("/{payment_id}")
def void_payment(payment_id: int, db: Session = Depends(get_db)):
    """Voids a payment and reverses its bill and advance effects."""
    manager = PaymentManager(db)
    if manager.repos.payments.get(payment_id) is None:
        raise HTTPException(status_code=404, detail="Payment not found")

    try:
        result = manager.void_payment(payment_id)
    except BillingError as e:
        raise http_error(e)

    return {
        "id": payment_id,
        "status": "CANCELLED",
        "total_reversed": format_money(result.total_reversed),
        "reversals": [
            {
                "bill_id": r.bill_id,
                "amount": format_money(r.amount),
                "paid_before": format_money(r.paid_before),
                "paid_after": format_money(r.paid_after),
                "status_before": r.status_before.value,
                "status_after": r.status_after.value,
            }
            for r in result.reversals
        ],
        "advance_dues_reversed": format_money(result.advance_dues_reversed),
        "advance_util_reversed": format_money(result.advance_util_reversed),
        "advance_shortfall": format_money(result.advance_shortfall),
        "is_partial": result.is_partial,
    }


@router.get("/outstanding/{unit_id}")
def get_outstanding(unit_id: int, db: Session = Depends(get_db)):
    """Gets the unit's UNPAID, PARTIAL and OVERDUE bills, oldest first."""
    if db.get(Unit, unit_id) is None:
        raise HTTPException(status_code=404, detail="Unit not found")

    bills = PaymentManager(db).outstanding_bills(unit_id)
    total = money_sum(b.balance for b in bills)
    return {
        "unit_id": unit_id,
        "total_outstanding": format_money(total),
        "bills": [bill_to_dict(b) for b in bills],
    }
