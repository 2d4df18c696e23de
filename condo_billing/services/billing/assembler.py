"""
Bill assembly.

A bill is only built through assemble_bill(), which derives total_amount,
balance and status from the components:

    total   = electric + water + dues + parking + SP + penalty + other
              - discounts - advance dues applied - advance utilities applied
    balance = max(0, total - paid)
"""

from dataclasses import dataclass, fields, replace
from datetime import date
from decimal import Decimal
from typing import Optional

from condo_billing.core.errors import InconsistentStateError, ValidationError
from condo_billing.core.money import ZERO, q2, to_decimal
from condo_billing.models.billing import Bill, CHARGE_FIELDS, CREDIT_FIELDS, COMPONENT_FIELDS
from condo_billing.models.enums import BillType
from condo_billing.services.billing.lifecycle import (
    compute_balance, ensure_unlocked, evaluate_status, refresh_bill
)


@dataclass(frozen=True)
class BillComponents:
    electric_amount: Decimal = ZERO
    water_amount: Decimal = ZERO
    dues_amount: Decimal = ZERO
    parking_fee: Decimal = ZERO
    sp_assessment: Decimal = ZERO
    penalty_amount: Decimal = ZERO
    other_charges: Decimal = ZERO
    discounts: Decimal = ZERO
    advance_dues_applied: Decimal = ZERO
    advance_util_applied: Decimal = ZERO

    def __post_init__(self):
        for item in fields(self):
            value = q2(getattr(self, item.name))
            if value < ZERO:
                raise ValidationError(f"{item.name} cannot be negative: {value}")
            object.__setattr__(self, item.name, value)

    @property
    def gross(self) -> Decimal:
        return sum((getattr(self, name) for name in CHARGE_FIELDS), ZERO)

    @property
    def deductions(self) -> Decimal:
        return sum((getattr(self, name) for name in CREDIT_FIELDS), ZERO)

    @property
    def total(self) -> Decimal:
        return self.gross - self.deductions

    def as_dict(self) -> dict:
        return {name: getattr(self, name) for name in COMPONENT_FIELDS}


def components_of(bill: Bill) -> BillComponents:
    return BillComponents(**{name: to_decimal(getattr(bill, name)) for name in COMPONENT_FIELDS})


def apply_advances(components: BillComponents, advance_dues, advance_utilities) -> BillComponents:
    """
    Applies available advance credit to a new bill.
    Advance dues cover association dues only; advance utilities cover
    electric + water only.
    """
    dues_credit = min(max(ZERO, to_decimal(advance_dues)), components.dues_amount)
    utility_credit = min(
        max(ZERO, to_decimal(advance_utilities)),
        components.electric_amount + components.water_amount
    )
    return replace(
        components,
        advance_dues_applied=dues_credit,
        advance_util_applied=utility_credit,
    )


def assemble_bill(
    unit_id: int,
    billing_month: str,
    components: BillComponents,
    bill_type: BillType = BillType.REGULAR,
    statement_date: Optional[date] = None,
    due_date: Optional[date] = None,
    bill_number: Optional[str] = None,
) -> Bill:
    """
    Builds a new unpaid bill from its components.

    Raises:
        ValidationError: when credits exceed charges (negative total)
    """
    total = components.total
    if total < ZERO:
        raise ValidationError(
            f"Bill total cannot be negative (charges {components.gross}, credits {components.deductions})"
        )

    return Bill(
        unit_id=unit_id,
        billing_month=billing_month,
        bill_type=bill_type,
        bill_number=bill_number,
        statement_date=statement_date,
        due_date=due_date,
        **components.as_dict(),
        total_amount=total,
        paid_amount=ZERO,
        balance=compute_balance(total, ZERO),
        status=evaluate_status(total, ZERO),
        is_locked=False,
    )


def edit_bill_components(bill: Bill, **changes) -> Bill:
    """
    Manual edit of bill components (bookkeeper correction).

    Raises:
        LockedBillError: the bill was already distributed
        ValidationError: unknown component, negative value, or a new total
            below what was already paid
    """
    ensure_unlocked(bill)
    unknown = sorted(set(changes) - set(COMPONENT_FIELDS))
    if unknown:
        raise ValidationError(f"Unknown bill components: {', '.join(unknown)}")

    updated = replace(components_of(bill), **changes)
    if updated.total < ZERO:
        raise ValidationError("Bill total cannot be negative")
    if updated.total < to_decimal(bill.paid_amount):
        raise ValidationError(
            f"New total {updated.total} is below the amount already paid ({q2(bill.paid_amount)})"
        )

    for name, value in updated.as_dict().items():
        setattr(bill, name, value)
    bill.total_amount = updated.total
    refresh_bill(bill)
    return bill


def verify_bill_total(bill: Bill) -> None:
    """Raises InconsistentStateError when total_amount drifted from the components."""
    expected = components_of(bill).total
    if q2(bill.total_amount) != expected:
        raise InconsistentStateError(
            f"Bill {bill.id}: total_amount {q2(bill.total_amount)} != components total {expected}"
        )
