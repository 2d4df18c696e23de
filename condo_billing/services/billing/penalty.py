"""
Compounding penalty on unpaid bills.

Reproduces the association's penalty sheet exactly. For each eligible
unpaid bill, oldest first:

    tenPercentP  = principal × rate
    first bill:  totalInterest = tenPercentP
    next bills:  sum           = totalInterest(prev) + tenPercentP
                 compound      = sum × rate
                 totalInterest = sum + compound

The final totalInterest is the penalty added to the bill being generated.
Grace rule: monthsOverdue = (month difference) - 1, and a bill only
contributes once monthsOverdue >= 2. OPENING_BALANCE bills never contribute.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, List

from condo_billing.core.billing_period import months_between
from condo_billing.core.money import ZERO, q2, to_decimal
from condo_billing.models.enums import BillStatus, BillType

PENALTY_GRACE_MONTHS = 2


@dataclass(frozen=True)
class PenaltyEntry:
    """Unpaid principal of one prior bill."""
    billing_month: str
    principal: Decimal


@dataclass(frozen=True)
class PenaltyStep:
    billing_month: str
    principal: Decimal
    ten_percent_p: Decimal
    sum_with_prev_interest: Decimal
    compound_interest: Decimal
    total_interest: Decimal


@dataclass
class PenaltyResult:
    total_interest: Decimal = ZERO
    total_principal: Decimal = ZERO
    breakdown: List[PenaltyStep] = field(default_factory=list)

    @property
    def total_with_interest(self) -> Decimal:
        return self.total_principal + self.total_interest

    @property
    def penalty_amount(self) -> Decimal:
        """Penalty as stored on the bill (centavos)."""
        return q2(self.total_interest)


def months_overdue(bill_month: str, current_month: str) -> int:
    """
    Months a bill is past due relative to the period being generated.
    The bill of the previous month is 0 months overdue.
    """
    return months_between(bill_month, current_month) - 1


def is_penalty_eligible(bill_month: str, current_month: str) -> bool:
    return months_overdue(bill_month, current_month) >= PENALTY_GRACE_MONTHS


def unpaid_principal(bill) -> Decimal:
    """
    Unpaid part of a bill's principal (its total without embedded penalty),
    scaled by the fraction of the bill that is still unpaid.
    """
    total = to_decimal(bill.total_amount)
    if total <= ZERO:
        return ZERO
    principal = total - to_decimal(bill.penalty_amount)
    balance = max(ZERO, to_decimal(bill.balance))
    return principal * (balance / total)


def compounding_penalty(entries: Iterable[PenaltyEntry], penalty_rate) -> PenaltyResult:
    """
    Applies the compounding recurrence to already-eligible entries.

    Args:
        entries: Unpaid principals, oldest first
        penalty_rate: Fraction, e.g. Decimal('0.10')

    Returns:
        PenaltyResult with full-precision totals and a per-bill breakdown
    """
    rate = to_decimal(penalty_rate)
    result = PenaltyResult()

    for index, entry in enumerate(entries):
        principal = to_decimal(entry.principal)
        ten_percent_p = principal * rate
        result.total_principal += principal

        if index == 0:
            sum_with_prev = ZERO
            compound = ZERO
            result.total_interest = ten_percent_p
        else:
            sum_with_prev = result.total_interest + ten_percent_p
            compound = sum_with_prev * rate
            result.total_interest = sum_with_prev + compound

        result.breakdown.append(PenaltyStep(
            billing_month=entry.billing_month,
            principal=principal,
            ten_percent_p=ten_percent_p,
            sum_with_prev_interest=sum_with_prev,
            compound_interest=compound,
            total_interest=result.total_interest,
        ))

    return result


def eligible_entries(prior_bills: Iterable, current_month: str) -> List[PenaltyEntry]:
    """
    Selects the prior bills that contribute to the penalty, oldest first.

    Skipped (the chain continues past them): bills of the current or later
    months, PAID or fully settled bills, bills still in the grace period,
    OPENING_BALANCE bills and bills with no unpaid principal.
    """
    entries = []
    for bill in sorted(prior_bills, key=lambda b: b.billing_month):
        if bill.billing_month >= current_month:
            continue
        if bill.bill_type == BillType.OPENING_BALANCE:
            continue
        if bill.status == BillStatus.PAID or to_decimal(bill.balance) <= ZERO:
            continue
        if not is_penalty_eligible(bill.billing_month, current_month):
            continue
        principal = unpaid_principal(bill)
        if principal <= ZERO:
            continue
        entries.append(PenaltyEntry(bill.billing_month, principal))
    return entries


def penalty_for_period(prior_bills: Iterable, current_month: str, penalty_rate) -> PenaltyResult:
    """
    Penalty to add to a unit's bill for current_month.

    Args:
        prior_bills: The unit's earlier bills (any order, any status)
        current_month: Billing period being generated ('YYYY-MM')
        penalty_rate: Fraction from the rate schedule

    Returns:
        PenaltyResult (use .penalty_amount for the bill)
    """
    return compounding_penalty(eligible_entries(prior_bills, current_month), penalty_rate)
