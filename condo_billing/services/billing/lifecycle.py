"""
Bill lifecycle.

Status is a pure function of (total_amount, paid_amount):
- balance <= 0.01      -> PAID (1 centavo rounding tolerance)
- paid > 0, balance > 0.01 -> PARTIAL
- paid == 0            -> UNPAID
OVERDUE is applied by the periodic sweep (mark_overdue), never by payments.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, List, Optional

from condo_billing.config import settings
from condo_billing.core.errors import LockedBillError, ValidationError
from condo_billing.core.money import ZERO, q2, to_decimal
from condo_billing.models.enums import BillStatus

OUTSTANDING_STATUSES = (BillStatus.UNPAID, BillStatus.PARTIAL, BillStatus.OVERDUE)


def compute_balance(total_amount, paid_amount) -> Decimal:
    return q2(max(ZERO, to_decimal(total_amount) - to_decimal(paid_amount)))


def evaluate_status(total_amount, paid_amount) -> BillStatus:
    paid = to_decimal(paid_amount)
    if paid < ZERO:
        raise ValidationError(f"Paid amount cannot be negative: {paid}")
    balance = to_decimal(total_amount) - paid
    if balance <= settings.payment_tolerance:
        return BillStatus.PAID
    if paid > ZERO:
        return BillStatus.PARTIAL
    return BillStatus.UNPAID


def refresh_bill(bill) -> BillStatus:
    """
    Recomputes balance and status of a bill after its paid amount changed.
    A bill already classified OVERDUE stays OVERDUE until fully paid.
    """
    status = evaluate_status(bill.total_amount, bill.paid_amount)
    bill.balance = compute_balance(bill.total_amount, bill.paid_amount)
    if status != BillStatus.PAID and bill.status == BillStatus.OVERDUE:
        status = BillStatus.OVERDUE
    bill.status = status
    return status


def set_paid_amount(bill, paid_amount) -> BillStatus:
    """
    Payment-driven update of paid_amount, balance and status.
    Allowed on locked bills.
    """
    paid = q2(paid_amount)
    if paid < ZERO:
        raise ValidationError(f"Paid amount cannot be negative: {paid}")
    bill.paid_amount = paid
    return refresh_bill(bill)


def restore_overdue(bill) -> BillStatus:
    """Puts an unpaid bill back to OVERDUE (used when a void undoes its payment)."""
    if evaluate_status(bill.total_amount, bill.paid_amount) == BillStatus.PAID:
        raise ValidationError(f"Bill {bill.id} is paid and cannot be OVERDUE")
    bill.status = BillStatus.OVERDUE
    return bill.status


def is_outstanding(bill) -> bool:
    return bill.status in OUTSTANDING_STATUSES and to_decimal(bill.balance) > ZERO


def mark_overdue(bills: Iterable, as_of: date) -> List:
    """
    Periodic sweep: re-classifies UNPAID/PARTIAL bills past their due date.

    Returns:
        Bills whose status changed to OVERDUE
    """
    changed = []
    for bill in bills:
        if bill.status not in (BillStatus.UNPAID, BillStatus.PARTIAL):
            continue
        if bill.due_date is None or bill.due_date >= as_of:
            continue
        bill.status = BillStatus.OVERDUE
        changed.append(bill)
    return changed


def ensure_unlocked(bill) -> None:
    if bill.is_locked:
        raise LockedBillError(bill.id)


def lock_bill(bill, when: Optional[datetime] = None) -> None:
    """Locks a bill once its statement has been distributed to the owner."""
    bill.is_locked = True
    bill.locked_at = when or datetime.now()


def unlock_bill(bill) -> None:
    bill.is_locked = False
    bill.locked_at = None
