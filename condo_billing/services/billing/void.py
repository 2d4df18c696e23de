"""
Payment void (reversal).

Exact inverse of apply_allocation():
- each BillPayment amount is taken back from its bill, and a bill the
  payment found OVERDUE goes back to OVERDUE,
- the advance credit the payment created is taken back from the unit,
- the payment becomes CANCELLED; its BillPayment rows stay as history.

If the unit already consumed part of that advance credit on a later bill,
the advance balance cannot go below zero. The uncovered part is reported
on VoidResult (advance_*_shortfall, is_partial).
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional

from condo_billing.core.errors import InconsistentStateError, ValidationError
from condo_billing.core.money import ZERO, money_sum, q2, to_decimal
from condo_billing.models.enums import BillStatus, PaymentStatus
from condo_billing.services.billing.allocation import explicit_advances
from condo_billing.services.billing.lifecycle import restore_overdue, set_paid_amount

VOID_MARKER = "VOIDED"


@dataclass
class BillReversal:
    bill: object
    amount: Decimal
    paid_before: Decimal
    paid_after: Decimal
    status_before: BillStatus
    status_after: BillStatus

    @property
    def bill_id(self):
        return self.bill.id


@dataclass
class VoidResult:
    payment_id: Optional[int]
    reversals: List[BillReversal] = field(default_factory=list)
    advance_dues_reversed: Decimal = ZERO
    advance_util_reversed: Decimal = ZERO
    advance_dues_shortfall: Decimal = ZERO
    advance_util_shortfall: Decimal = ZERO

    @property
    def total_reversed(self) -> Decimal:
        return money_sum(r.amount for r in self.reversals)

    @property
    def advance_shortfall(self) -> Decimal:
        return self.advance_dues_shortfall + self.advance_util_shortfall

    @property
    def is_partial(self) -> bool:
        return self.advance_shortfall > ZERO


def reconstruct_overflow(payment) -> Decimal:
    """Overflow advance of a payment: total - Σ BillPayment - explicit advances."""
    allocated = money_sum(bp.total_amount for bp in payment.bill_payments)
    return q2(to_decimal(payment.total_amount) - allocated - explicit_advances(payment))


def _take_back(available, amount: Decimal):
    """Returns (new_balance, reversed, shortfall) with the balance clamped at 0."""
    available = to_decimal(available)
    reversed_amount = min(available, amount)
    return q2(available - reversed_amount), q2(reversed_amount), q2(amount - reversed_amount)


def void_payment(payment, advance_balance=None) -> VoidResult:
    """
    Reverses a confirmed payment.

    Args:
        payment: Payment to void
        advance_balance: The unit's UnitAdvanceBalance row (None if the unit has none)

    Returns:
        VoidResult with per-bill reversals and the advance reversal report

    Raises:
        ValidationError: the payment is already cancelled
        InconsistentStateError: stored advance credit does not match the payment's rows
    """
    if payment.status == PaymentStatus.CANCELLED:
        raise ValidationError(f"Payment {payment.id} is already voided")

    overflow = reconstruct_overflow(payment)
    dues_created = q2(payment.advance_dues_created)
    util_created = q2(payment.advance_util_created)
    if overflow < ZERO or q2(dues_created + util_created - explicit_advances(payment)) != overflow:
        raise InconsistentStateError(
            f"Payment {payment.id}: recorded advance {dues_created + util_created} does not match "
            f"reconstructed overflow {overflow}"
        )

    result = VoidResult(payment_id=payment.id)

    for bill_payment in payment.bill_payments:
        bill = bill_payment.bill
        amount = q2(bill_payment.total_amount)
        paid_before = q2(bill.paid_amount)
        status_before = bill.status
        status_after = set_paid_amount(bill, max(ZERO, paid_before - amount))
        if bill_payment.bill_status_before == BillStatus.OVERDUE and status_after != BillStatus.PAID:
            status_after = restore_overdue(bill)
        result.reversals.append(BillReversal(
            bill=bill,
            amount=amount,
            paid_before=paid_before,
            paid_after=q2(bill.paid_amount),
            status_before=status_before,
            status_after=status_after,
        ))

    if advance_balance is None:
        result.advance_dues_shortfall = dues_created
        result.advance_util_shortfall = util_created
    else:
        (
            advance_balance.advance_dues,
            result.advance_dues_reversed,
            result.advance_dues_shortfall,
        ) = _take_back(advance_balance.advance_dues, dues_created)
        (
            advance_balance.advance_utilities,
            result.advance_util_reversed,
            result.advance_util_shortfall,
        ) = _take_back(advance_balance.advance_utilities, util_created)

    payment.status = PaymentStatus.CANCELLED
    payment.remarks = f"{payment.remarks} | {VOID_MARKER}" if payment.remarks else VOID_MARKER
    return result
