"""
Payment recording and voiding.
Each operation runs as one transaction: bills, BillPayment rows, the payment
and the unit's advance balance are committed together or not at all.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from condo_billing.core.database import transaction
from condo_billing.core.errors import ValidationError
from condo_billing.core.money import ZERO, q2, to_decimal
from condo_billing.models.billing import Bill
from condo_billing.models.enums import AdvanceTarget, AllocationStrategy, PaymentStatus
from condo_billing.models.payment import Payment
from condo_billing.repositories.sql import Repositories
from condo_billing.services.billing.allocation import (
    AllocationResult,
    ManualAllocation,
    PAYMENT_HINT_FIELDS,
    allocate_payment,
    allocation_from_rows,
    apply_allocation,
    explicit_advances,
    is_applied,
    payment_hints,
    summarize_allocation,
    verify_bill_ledger,
    verify_payment_conservation,
)
from condo_billing.services.billing.void import VoidResult, void_payment


@dataclass
class PaymentReceipt:
    payment: Payment
    allocation: AllocationResult

    def summary(self) -> Dict[str, object]:
        return summarize_allocation(self.allocation)


class PaymentManager:
    """Records payments against a unit's bills and voids them."""

    def __init__(self, db: Session, repos: Optional[Repositories] = None):
        self.db = db
        self.repos = repos or Repositories.for_session(db)

    def outstanding_bills(self, unit_id: int) -> List[Bill]:
        """UNPAID, PARTIAL and OVERDUE bills of a unit with a balance, oldest first."""
        return self.repos.bills.list_outstanding(unit_id)

    def record_payment(
        self,
        unit_id: int,
        total_amount,
        payment_date: date,
        or_number: Optional[str] = None,
        payment_method: Optional[str] = None,
        strategy: AllocationStrategy = AllocationStrategy.OLDEST_FIRST,
        advance_target: AdvanceTarget = AdvanceTarget.DUES,
        manual: Optional[Sequence[ManualAllocation]] = None,
        hints: Optional[Dict[str, Decimal]] = None,
        advance_dues_amount=ZERO,
        advance_util_amount=ZERO,
        remarks: Optional[str] = None,
    ) -> PaymentReceipt:
        """
        Records a payment and allocates it.

        Args:
            unit_id: Paying unit
            total_amount: Amount received
            payment_date: Date of payment
            or_number: Official receipt number (unique per tenant)
            payment_method: CASH, CHECK, BANK_TRANSFER, ...
            strategy: Allocation strategy
            advance_target: Where overflow is credited
            manual: Per-bill amounts for MANUAL
            hints: Per-component amounts (required for BY_COMPONENT)
            advance_dues_amount: Explicit advance for dues, never applied to bills
            advance_util_amount: Explicit advance for utilities, never applied to bills
            remarks: Free text

        Returns:
            PaymentReceipt with the saved payment and its allocation

        Raises:
            ValidationError: invalid amounts, unknown unit, duplicate OR number
            InsufficientFundsError: manual allocation does not fit
            InconsistentStateError: ledger check failed after allocation
        """
        unit = self.repos.units.get(unit_id)
        if unit is None:
            raise ValidationError(f"Unit {unit_id} not found")

        total = q2(total_amount)
        if total <= ZERO:
            raise ValidationError("Payment amount must be greater than 0")
        advance_dues = q2(advance_dues_amount)
        advance_util = q2(advance_util_amount)
        if advance_dues < ZERO or advance_util < ZERO:
            raise ValidationError("Advance amounts cannot be negative")

        hints = {name: q2(value) for name, value in (hints or {}).items()}
        unknown = sorted(set(hints) - set(PAYMENT_HINT_FIELDS))
        if unknown:
            raise ValidationError(f"Unknown payment components: {', '.join(unknown)}")
        if any(value < ZERO for value in hints.values()):
            raise ValidationError("Payment component amounts cannot be negative")

        strategy = AllocationStrategy(strategy)
        to_allocate = total - advance_dues - advance_util
        if to_allocate < ZERO:
            raise ValidationError(
                f"Explicit advances ({advance_dues + advance_util}) exceed the payment total ({total})"
            )
        if strategy == AllocationStrategy.BY_COMPONENT:
            hinted = sum(hints.values(), ZERO)
            if hinted != to_allocate:
                raise ValidationError(
                    f"Component amounts ({hinted}) do not match the payment total less advances ({to_allocate})"
                )

        if or_number and self.repos.payments.find_by_or_number(unit.tenant_id, or_number):
            raise ValidationError(f"OR number {or_number} already used")

        with transaction(self.db):
            # Lock the unit row before reading bills so concurrent payments on a unit serialize
            self.repos.units.lock(unit_id)
            advance_balance = self.repos.advances.lock_for_unit(unit_id)
            bills = self.repos.bills.list_outstanding(unit_id)

            allocation = allocate_payment(
                to_allocate,
                bills,
                strategy=strategy,
                manual=manual,
                hints=hints,
                advance_target=advance_target,
            )

            payment = Payment(
                tenant_id=unit.tenant_id,
                unit_id=unit_id,
                or_number=or_number,
                payment_date=payment_date,
                payment_method=payment_method,
                advance_dues_amount=advance_dues,
                advance_util_amount=advance_util,
                advance_dues_created=ZERO,
                advance_util_created=ZERO,
                total_amount=total,
                strategy=strategy,
                advance_target=AdvanceTarget(advance_target),
                status=PaymentStatus.CONFIRMED,
                remarks=remarks,
                **{column: hints.get(name, ZERO) for name, column in PAYMENT_HINT_FIELDS.items()},
            )
            self.repos.payments.add(payment)
            self.repos.payments.add_allocations(apply_allocation(payment, allocation, advance_balance))
            self._verify_stored(payment)

        print(f"[OK] Payment {payment.id} recorded for unit {unit.unit_number}: {total} "
              f"({len(allocation.allocations)} bill(s), advance {q2(allocation.advance_amount)})")
        return PaymentReceipt(payment=payment, allocation=allocation)

    def reapply_payment(self, payment_id: int) -> PaymentReceipt:
        """
        Allocates a stored payment again. A payment that was already applied
        is left untouched and its existing allocation is returned.

        Raises:
            ValidationError: unknown or voided payment
        """
        payment = self._get_payment(payment_id)
        if payment.status == PaymentStatus.CANCELLED:
            raise ValidationError(f"Payment {payment_id} is voided")
        if is_applied(payment):
            return PaymentReceipt(payment=payment, allocation=allocation_from_rows(payment))

        with transaction(self.db):
            self.repos.units.lock(payment.unit_id)
            advance_balance = self.repos.advances.lock_for_unit(payment.unit_id)
            allocation = allocate_payment(
                to_decimal(payment.total_amount) - explicit_advances(payment),
                self.repos.bills.list_outstanding(payment.unit_id),
                strategy=payment.strategy,
                hints=payment_hints(payment),
                advance_target=payment.advance_target,
            )
            self.repos.payments.add_allocations(apply_allocation(payment, allocation, advance_balance))
            self._verify_stored(payment)
        return PaymentReceipt(payment=payment, allocation=allocation)

    def void_payment(self, payment_id: int) -> VoidResult:
        """
        Voids a payment and reverses its effects.

        Raises:
            ValidationError: unknown or already voided payment
            InconsistentStateError: the payment's records disagree
        """
        payment = self._get_payment(payment_id)

        with transaction(self.db):
            self.repos.units.lock(payment.unit_id)
            advance_balance = self.repos.advances.lock_for_unit(payment.unit_id)
            result = void_payment(payment, advance_balance)
            self._verify_stored(payment)

        if result.is_partial:
            print(f"[WARNING] Payment {payment_id} voided with advance shortfall {q2(result.advance_shortfall)} "
                  f"(dues {result.advance_dues_shortfall}, utilities {result.advance_util_shortfall}): "
                  f"credit already consumed by later bills")
        print(f"[OK] Payment {payment_id} voided: {q2(result.total_reversed)} reversed on "
              f"{len(result.reversals)} bill(s)")
        return result

    def _verify_stored(self, payment: Payment) -> None:
        """Flushes, then checks the ledger invariants against what the database holds."""
        self.db.flush()
        self.db.expire_all()
        if payment.status == PaymentStatus.CONFIRMED:
            verify_payment_conservation(payment)
        for bill_payment in payment.bill_payments:
            verify_bill_ledger(bill_payment.bill)

    def _get_payment(self, payment_id: int) -> Payment:
        payment = self.repos.payments.get(payment_id)
        if payment is None:
            raise ValidationError(f"Payment {payment_id} not found")
        return payment

