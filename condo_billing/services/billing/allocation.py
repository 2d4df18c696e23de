"""
Payment allocation.

Distributes a payment over a unit's outstanding bills:
- OLDEST_FIRST (default) / NEWEST_FIRST: walk the bills by billing month,
  apply min(remaining, balance) to each and split it proportionally over
  the bill's unpaid components,
- MANUAL: the bookkeeper gives exact per-bill, per-component amounts;
  violations are rejected with an itemized list, never clamped,
- BY_COMPONENT: each component amount of the payment (electric, water, dues,
  penalty, SP) pays that component on the oldest bills first.
Whatever is left after all bills are settled becomes advance credit.

allocate_payment() is pure. apply_allocation() writes the result onto the
in-memory Bill/Payment/UnitAdvanceBalance objects; persisting them is the
caller's job.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence

from condo_billing.core.errors import InconsistentStateError, InsufficientFundsError, ValidationError
from condo_billing.core.money import ZERO, money_sum, q2, to_decimal
from condo_billing.models.enums import AdvanceTarget, AllocationStrategy, PaymentStatus
from condo_billing.models.payment import BillPayment
from condo_billing.services.billing.lifecycle import is_outstanding, set_paid_amount

# Allocation components, in tie-break order
COMPONENTS = ("electric", "water", "dues", "sp_assessment", "penalty", "other")

# BillPayment column for each component
BILL_PAYMENT_FIELDS = {
    "electric": "electric_amount",
    "water": "water_amount",
    "dues": "dues_amount",
    "sp_assessment": "sp_assessment_amount",
    "penalty": "penalty_amount",
    "other": "other_amount",
}

# Payment hint column for each component usable by BY_COMPONENT
PAYMENT_HINT_FIELDS = {
    "electric": "electric_amount",
    "water": "water_amount",
    "dues": "dues_amount",
    "penalty": "penalty_amount",
    "sp_assessment": "sp_assessment_amount",
}

UTILITY_COMPONENTS = ("electric", "water")


@dataclass
class BillAllocation:
    """Portion of a payment applied to one bill."""
    bill: object
    total_amount: Decimal
    components: Dict[str, Decimal]
    remaining_balance: Decimal

    @property
    def bill_id(self):
        return self.bill.id

    @property
    def billing_month(self) -> str:
        return self.bill.billing_month


@dataclass
class AllocationResult:
    strategy: AllocationStrategy
    amount: Decimal
    allocations: List[BillAllocation] = field(default_factory=list)
    advance_dues: Decimal = ZERO       # Overflow credited to advance dues
    advance_utilities: Decimal = ZERO  # Overflow credited to advance utilities

    @property
    def total_allocated(self) -> Decimal:
        return money_sum(a.total_amount for a in self.allocations)

    @property
    def advance_amount(self) -> Decimal:
        return self.advance_dues + self.advance_utilities


@dataclass(frozen=True)
class ManualAllocation:
    """Bookkeeper-specified amounts for one bill."""
    bill_id: int
    electric: Decimal = ZERO
    water: Decimal = ZERO
    dues: Decimal = ZERO
    sp_assessment: Decimal = ZERO
    penalty: Decimal = ZERO
    other: Decimal = ZERO

    def amounts(self) -> Dict[str, Decimal]:
        return {name: to_decimal(getattr(self, name)) for name in COMPONENTS}

    @property
    def total(self) -> Decimal:
        return sum(self.amounts().values(), ZERO)


def net_components(bill) -> Dict[str, Decimal]:
    """
    Bill components after credits, keyed by allocation component.

    Credits are used up as a waterfall: advance dues against dues then
    parking, advance utilities against electric then water, and discounts
    (plus any unused advance credit) against other, SP, parking, dues,
    water, electric and finally penalty.
    """
    parts = {
        "electric": to_decimal(bill.electric_amount),
        "water": to_decimal(bill.water_amount),
        "dues": to_decimal(bill.dues_amount),
        "parking": to_decimal(bill.parking_fee),
        "sp_assessment": to_decimal(bill.sp_assessment),
        "penalty": to_decimal(bill.penalty_amount),
        "other": to_decimal(bill.other_charges),
    }

    def take(credit: Decimal, order: Sequence[str]) -> Decimal:
        for key in order:
            used = min(credit, parts[key])
            parts[key] -= used
            credit -= used
        return credit

    leftover = take(to_decimal(bill.advance_dues_applied), ("dues", "parking"))
    leftover += take(to_decimal(bill.advance_util_applied), UTILITY_COMPONENTS)
    take(
        to_decimal(bill.discounts) + leftover,
        ("other", "sp_assessment", "parking", "dues", "water", "electric", "penalty"),
    )

    parts["dues"] += parts.pop("parking")
    return parts


def paid_components(bill) -> Dict[str, Decimal]:
    """Component amounts already paid on a bill by confirmed payments."""
    paid = {name: ZERO for name in COMPONENTS}
    for bill_payment in bill.bill_payments:
        if bill_payment.payment is not None and bill_payment.payment.status == PaymentStatus.CANCELLED:
            continue
        for name, column in BILL_PAYMENT_FIELDS.items():
            paid[name] += to_decimal(getattr(bill_payment, column))
    return paid


def unpaid_components(bill) -> Dict[str, Decimal]:
    net = net_components(bill)
    paid = paid_components(bill)
    return {name: max(ZERO, net[name] - paid[name]) for name in COMPONENTS}


def split_proportionally(amount: Decimal, unpaid: Dict[str, Decimal]) -> Dict[str, Decimal]:
    """
    Splits an amount over unpaid components: share = unpaid × (amount / total unpaid),
    rounded to centavos. The rounding residue goes to the largest share so that
    the shares add up to the amount exactly.
    """
    total_unpaid = sum(unpaid.values(), ZERO)
    if total_unpaid <= ZERO:
        shares = {name: ZERO for name in COMPONENTS}
        shares["other"] = amount
        return shares

    if amount >= total_unpaid:
        shares = {name: q2(unpaid[name]) for name in COMPONENTS}
    else:
        ratio = amount / total_unpaid
        shares = {name: q2(unpaid[name] * ratio) for name in COMPONENTS}

    residue = amount - sum(shares.values(), ZERO)
    if residue != ZERO:
        largest = max(COMPONENTS, key=lambda name: (shares[name], -COMPONENTS.index(name)))
        shares[largest] += residue
    return shares


def sort_bills(bills: Iterable, strategy: AllocationStrategy) -> List:
    newest_first = strategy == AllocationStrategy.NEWEST_FIRST
    return sorted(
        bills,
        key=lambda bill: (bill.billing_month, bill.id or 0),
        reverse=newest_first,
    )


def _split_advance(amount: Decimal, target: AdvanceTarget, result: AllocationResult) -> None:
    if AdvanceTarget(target) == AdvanceTarget.UTILITIES:
        result.advance_utilities += amount
    else:
        result.advance_dues += amount


def _allocate_automatic(amount, bills, strategy, advance_target) -> AllocationResult:
    result = AllocationResult(strategy=strategy, amount=amount)
    remaining = amount

    for bill in sort_bills(bills, strategy):
        if remaining <= ZERO:
            break
        balance = q2(bill.balance)
        to_apply = min(remaining, balance)
        if to_apply <= ZERO:
            continue
        result.allocations.append(BillAllocation(
            bill=bill,
            total_amount=to_apply,
            components=split_proportionally(to_apply, unpaid_components(bill)),
            remaining_balance=balance - to_apply,
        ))
        remaining -= to_apply

    if remaining > ZERO:
        _split_advance(remaining, advance_target, result)
    return result


def _allocate_manual(amount, bills, manual: Sequence[ManualAllocation], advance_target) -> AllocationResult:
    by_id = {bill.id: bill for bill in bills}
    result = AllocationResult(strategy=AllocationStrategy.MANUAL, amount=amount)
    input_errors: List[str] = []
    funds_errors: List[str] = []
    seen = set()
    remaining = amount

    for item in manual:
        bill = by_id.get(item.bill_id)
        if bill is None:
            input_errors.append(f"Bill {item.bill_id} not found among the unit's outstanding bills")
            continue
        if item.bill_id in seen:
            input_errors.append(f"Bill {item.bill_id} appears more than once")
            continue
        seen.add(item.bill_id)

        amounts = item.amounts()
        negative = [name for name, value in amounts.items() if value < ZERO]
        if negative:
            input_errors.append(f"Bill {item.bill_id}: negative amount for {', '.join(negative)}")
            continue

        amounts = {name: q2(value) for name, value in amounts.items()}
        total = sum(amounts.values(), ZERO)
        if total <= ZERO:
            continue

        label = bill.bill_number or bill.id
        balance = q2(bill.balance)
        if total > balance:
            funds_errors.append(f"Allocation {total} exceeds balance {balance} of bill {label}")
            continue
        if total > remaining:
            funds_errors.append(
                f"Insufficient funds for bill {label}: {total} requested, {remaining} left of the payment"
            )
            continue

        result.allocations.append(BillAllocation(
            bill=bill,
            total_amount=total,
            components=amounts,
            remaining_balance=balance - total,
        ))
        remaining -= total

    if funds_errors:
        raise InsufficientFundsError(input_errors + funds_errors)
    if input_errors:
        raise ValidationError("; ".join(input_errors))

    if remaining > ZERO:
        _split_advance(remaining, advance_target, result)
    return result


def _allocate_by_component(hints: Dict[str, Decimal], bills) -> AllocationResult:
    remaining = {name: q2(hints.get(name, ZERO)) for name in PAYMENT_HINT_FIELDS}
    negative = [name for name, value in remaining.items() if value < ZERO]
    if negative:
        raise ValidationError(f"Negative payment amounts: {', '.join(negative)}")

    amount = sum(remaining.values(), ZERO)
    result = AllocationResult(strategy=AllocationStrategy.BY_COMPONENT, amount=amount)

    for bill in sort_bills(bills, AllocationStrategy.OLDEST_FIRST):
        if all(value <= ZERO for value in remaining.values()):
            break
        unpaid = unpaid_components(bill)
        balance = q2(bill.balance)
        shares = {name: ZERO for name in COMPONENTS}
        room = balance
        for name in PAYMENT_HINT_FIELDS:
            share = min(remaining[name], q2(unpaid[name]), room)
            shares[name] = share
            room -= share
        total = sum(shares.values(), ZERO)
        if total <= ZERO:
            continue
        for name in PAYMENT_HINT_FIELDS:
            remaining[name] -= shares[name]
        result.allocations.append(BillAllocation(
            bill=bill,
            total_amount=total,
            components=shares,
            remaining_balance=balance - total,
        ))

    result.advance_utilities = sum((remaining[name] for name in UTILITY_COMPONENTS), ZERO)
    result.advance_dues = sum(
        (value for name, value in remaining.items() if name not in UTILITY_COMPONENTS), ZERO
    )
    return result


def allocate_payment(
    amount,
    bills: Iterable,
    strategy: AllocationStrategy = AllocationStrategy.OLDEST_FIRST,
    manual: Optional[Sequence[ManualAllocation]] = None,
    hints: Optional[Dict[str, Decimal]] = None,
    advance_target: AdvanceTarget = AdvanceTarget.DUES,
) -> AllocationResult:
    """
    Allocates a payment over outstanding bills.

    Args:
        amount: Amount to spread over bills (payment total minus explicit advances).
            Ignored for BY_COMPONENT, where the hints define the amount.
        bills: The unit's bills; only outstanding ones are considered
        strategy: Allocation strategy
        manual: Per-bill amounts (MANUAL only)
        hints: Per-component amounts (BY_COMPONENT only)
        advance_target: Where overflow is credited (OLDEST_FIRST/NEWEST_FIRST/MANUAL)

    Returns:
        AllocationResult with one BillAllocation per touched bill

    Raises:
        ValidationError: negative amount, missing manual/hint input
        InsufficientFundsError: manual amounts above a bill balance or the payment
    """
    strategy = AllocationStrategy(strategy)
    outstanding = [bill for bill in bills if is_outstanding(bill)]

    if strategy == AllocationStrategy.BY_COMPONENT:
        if hints is None:
            raise ValidationError("BY_COMPONENT allocation needs per-component amounts")
        result = _allocate_by_component(hints, outstanding)
    else:
        amount = q2(amount)
        if amount < ZERO:
            raise ValidationError(f"Payment amount cannot be negative: {amount}")
        if strategy == AllocationStrategy.MANUAL:
            if manual is None:
                raise ValidationError("MANUAL allocation needs per-bill amounts")
            result = _allocate_manual(amount, outstanding, manual, advance_target)
        else:
            result = _allocate_automatic(amount, outstanding, strategy, advance_target)

    if result.total_allocated + result.advance_amount != result.amount:
        raise InconsistentStateError(
            f"Allocation does not add up: {result.total_allocated} + {result.advance_amount} != {result.amount}"
        )
    return result


def payment_hints(payment) -> Dict[str, Decimal]:
    return {name: to_decimal(getattr(payment, column)) for name, column in PAYMENT_HINT_FIELDS.items()}


def explicit_advances(payment) -> Decimal:
    return to_decimal(payment.advance_dues_amount) + to_decimal(payment.advance_util_amount)


def is_applied(payment) -> bool:
    """True once a payment has been allocated (bill rows or advance credit exist)."""
    return bool(payment.bill_payments) or (
        to_decimal(payment.advance_dues_created) + to_decimal(payment.advance_util_created) > ZERO
    )


def allocation_from_rows(payment) -> AllocationResult:
    """Rebuilds the AllocationResult of an applied payment from its BillPayment rows."""
    result = AllocationResult(
        strategy=AllocationStrategy(payment.strategy),
        amount=to_decimal(payment.total_amount) - explicit_advances(payment),
        advance_dues=to_decimal(payment.advance_dues_created) - to_decimal(payment.advance_dues_amount),
        advance_utilities=to_decimal(payment.advance_util_created) - to_decimal(payment.advance_util_amount),
    )
    for bill_payment in payment.bill_payments:
        result.allocations.append(BillAllocation(
            bill=bill_payment.bill,
            total_amount=to_decimal(bill_payment.total_amount),
            components={name: to_decimal(getattr(bill_payment, column))
                        for name, column in BILL_PAYMENT_FIELDS.items()},
            remaining_balance=to_decimal(bill_payment.bill.balance),
        ))
    return result


def apply_allocation(payment, result: AllocationResult, advance_balance) -> List[BillPayment]:
    """
    Writes an allocation onto the in-memory objects.

    Creates one BillPayment per touched bill, updates each bill's paid
    amount/balance/status, and credits explicit advances plus overflow to
    the unit's advance balance. Applying an already applied payment is a
    no-op that returns its existing rows.

    Args:
        payment: Payment being applied (CONFIRMED)
        result: Output of allocate_payment
        advance_balance: The unit's UnitAdvanceBalance row

    Returns:
        BillPayment rows of the payment
    """
    if is_applied(payment):
        return list(payment.bill_payments)
    if payment.status == PaymentStatus.CANCELLED:
        raise ValidationError(f"Payment {payment.id} is cancelled")

    created = []
    for allocation in result.allocations:
        bill = allocation.bill
        row = BillPayment(
            bill=bill,
            bill_status_before=bill.status,
            total_amount=allocation.total_amount,
            **{BILL_PAYMENT_FIELDS[name]: allocation.components.get(name, ZERO) for name in COMPONENTS},
        )
        # Appended from the payment side so the row cascades into the payment's session
        payment.bill_payments.append(row)
        created.append(row)
        set_paid_amount(bill, to_decimal(bill.paid_amount) + allocation.total_amount)

    dues_credit = q2(to_decimal(payment.advance_dues_amount) + result.advance_dues)
    util_credit = q2(to_decimal(payment.advance_util_amount) + result.advance_utilities)
    payment.advance_dues_created = dues_credit
    payment.advance_util_created = util_credit
    advance_balance.advance_dues = q2(to_decimal(advance_balance.advance_dues) + dues_credit)
    advance_balance.advance_utilities = q2(to_decimal(advance_balance.advance_utilities) + util_credit)
    return created


def summarize_allocation(result: AllocationResult) -> Dict[str, object]:
    """Totals for the payment receipt."""
    summary = {
        "total_paid": result.amount,
        "bills_paid": sum(1 for a in result.allocations if a.remaining_balance <= ZERO),
        "bills_partially_paid": sum(1 for a in result.allocations if a.remaining_balance > ZERO),
        "advance_dues": result.advance_dues,
        "advance_utilities": result.advance_utilities,
    }
    for name in COMPONENTS:
        summary[f"total_{name}"] = sum((a.components.get(name, ZERO) for a in result.allocations), ZERO)
    return summary


def verify_bill_ledger(bill) -> None:
    """
    Checks that a bill's paid_amount equals the sum of its BillPayment rows
    from confirmed payments.

    Raises:
        InconsistentStateError: the two disagree
    """
    recorded = money_sum(
        bp.total_amount
        for bp in bill.bill_payments
        if bp.payment is None or bp.payment.status != PaymentStatus.CANCELLED
    )
    if q2(recorded) != q2(bill.paid_amount):
        raise InconsistentStateError(
            f"Bill {bill.id}: paid_amount {q2(bill.paid_amount)} != allocated {q2(recorded)}"
        )


def verify_payment_conservation(payment) -> None:
    """
    Checks that a payment is fully accounted for:
    Σ BillPayment totals + advance created == payment total.
    """
    allocated = money_sum(bp.total_amount for bp in payment.bill_payments)
    advance = to_decimal(payment.advance_dues_created) + to_decimal(payment.advance_util_created)
    if q2(allocated + advance) != q2(payment.total_amount):
        raise InconsistentStateError(
            f"Payment {payment.id}: allocated {q2(allocated)} + advance {q2(advance)} "
            f"!= total {q2(payment.total_amount)}"
        )
