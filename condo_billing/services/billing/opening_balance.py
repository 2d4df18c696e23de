"""
Opening balances: legacy debt carried over when a building starts billing here.

Each unit has at most one OPENING_BALANCE bill, numbered 'OB-<unit number>',
with the whole amount under other_charges. It is paid like any other bill
but never accrues the compounding penalty.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from condo_billing.core.billing_period import due_date, parse_period, statement_date
from condo_billing.core.errors import BillingError, ValidationError
from condo_billing.core.money import ZERO, q2
from condo_billing.models.enums import BillType
from condo_billing.services.billing.assembler import BillComponents, assemble_bill, edit_bill_components

OPENING_BALANCE_PREFIX = "OB"


@dataclass
class OpeningBalanceEntry:
    unit_id: int
    amount: Decimal
    remarks: Optional[str] = None


@dataclass
class OpeningBalanceResult:
    created: int = 0
    updated: int = 0
    errors: List[str] = field(default_factory=list)


def opening_balance_number(unit) -> str:
    return f"{OPENING_BALANCE_PREFIX}-{unit.unit_number}"


def list_opening_balances(repos, tenant_id: str) -> List[Dict[str, Any]]:
    """Active units of a tenant with their opening balance bill, if saved."""
    rows = []
    for unit in repos.units.list_active(tenant_id):
        bill = repos.bills.get_opening_balance(unit.id)
        rows.append({
            "unit_id": unit.id,
            "unit_number": unit.unit_number,
            "floor_level": unit.floor_level,
            "owner_name": unit.owner_name,
            "opening_balance": q2(bill.total_amount) if bill else None,
            "balance": q2(bill.balance) if bill else None,
            "bill_id": bill.id if bill else None,
            "status": "saved" if bill else "new",
        })
    return rows


def save_opening_balances(
    repos,
    tenant_id: str,
    billing_month: str,
    entries: Iterable[OpeningBalanceEntry],
) -> OpeningBalanceResult:
    """
    Creates or updates opening balance bills.

    Entries with a zero or negative amount are skipped. Problems with a
    single unit (unknown unit, locked bill, new amount below what was
    already paid) are collected in errors and do not stop the others.

    Args:
        repos: Repositories (units, bills)
        tenant_id: Tenant owning the units
        billing_month: Period the debt is booked in ('YYYY-MM'), normally
            the month before the first generated bills
        entries: One OpeningBalanceEntry per unit

    Returns:
        OpeningBalanceResult with created/updated counts and per-unit errors

    Raises:
        ValidationError: invalid billing month or no positive amounts
    """
    parse_period(billing_month)
    valid = [entry for entry in entries if q2(entry.amount) > ZERO]
    if not valid:
        raise ValidationError("No opening balances to save")

    result = OpeningBalanceResult()
    for entry in valid:
        amount = q2(entry.amount)
        unit = repos.units.get(entry.unit_id)
        if unit is None or unit.tenant_id != tenant_id:
            result.errors.append(f"Unit {entry.unit_id} not found")
            continue

        existing = repos.bills.get_opening_balance(unit.id)
        if existing is None:
            bill = assemble_bill(
                unit_id=unit.id,
                billing_month=billing_month,
                components=BillComponents(other_charges=amount),
                bill_type=BillType.OPENING_BALANCE,
                statement_date=statement_date(billing_month),
                due_date=due_date(billing_month),
                bill_number=opening_balance_number(unit),
            )
            bill.remarks = entry.remarks or "Opening Balance"
            repos.bills.add(bill)
            result.created += 1
            continue

        try:
            edit_bill_components(existing, other_charges=amount)
        except BillingError as e:
            result.errors.append(f"{unit.unit_number}: {e}")
            print(f"  [WARNING] Opening balance of {unit.unit_number} not updated: {e}")
            continue
        if entry.remarks:
            existing.remarks = entry.remarks
        result.updated += 1

    print(f"[OK] Opening balances: {result.created} created, {result.updated} updated, "
          f"{len(result.errors)} error(s)")
    return result
