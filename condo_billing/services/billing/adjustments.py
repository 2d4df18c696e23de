"""
Per-period billing adjustments entered by the bookkeeper.

One BillingAdjustment row per unit and billing month holds the SP assessment
opt-in, discounts and other charges. The generation run reads them; this
module only maintains the rows and never touches bills.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from condo_billing.core.billing_period import parse_period
from condo_billing.core.errors import ValidationError
from condo_billing.core.money import ZERO, q2
from condo_billing.models.unit import BillingAdjustment
from condo_billing.services.billing.charges import calculate_sp_assessment
from condo_billing.services.billing.rates import RateSchedule

ADJUSTMENT_FIELDS = ("sp_assessment", "discounts", "other_charges")


@dataclass
class AdjustmentEntry:
    """Adjustment amounts of one unit, as entered on the adjustments screen."""
    unit_id: int
    sp_assessment: Decimal = ZERO
    discounts: Decimal = ZERO
    other_charges: Decimal = ZERO
    remarks: Optional[str] = None

    def amounts(self) -> Dict[str, Decimal]:
        return {name: q2(getattr(self, name)) for name in ADJUSTMENT_FIELDS}


@dataclass
class AdjustmentSaveResult:
    saved: int = 0
    deleted: int = 0
    unit_ids: List[int] = field(default_factory=list)


def list_adjustments(repos, tenant_id: str, billing_month: str) -> List[Dict[str, Any]]:
    """
    Every active unit of a tenant with its adjustment for billing_month
    (zeros when the unit has none).
    """
    parse_period(billing_month)
    rows = []
    for unit in repos.units.list_active(tenant_id):
        adjustment = repos.adjustments.get(unit.id, billing_month)
        row = {
            "unit_id": unit.id,
            "unit_number": unit.unit_number,
            "floor_level": unit.floor_level,
            "owner_name": unit.owner_name or "No Owner",
            "area": q2(unit.area),
            "parking_area": q2(unit.parking_area),
            "remarks": adjustment.remarks if adjustment else None,
        }
        for name in ADJUSTMENT_FIELDS:
            row[name] = q2(getattr(adjustment, name)) if adjustment else q2(ZERO)
        rows.append(row)
    return rows


def save_adjustments(
    repos,
    tenant_id: str,
    billing_month: str,
    entries: Iterable[AdjustmentEntry],
) -> AdjustmentSaveResult:
    """
    Creates or updates the adjustments of several units for one period.
    An entry whose amounts are all zero deletes the unit's adjustment.

    Args:
        repos: Repositories (units, adjustments)
        tenant_id: Tenant owning the units
        billing_month: Period in 'YYYY-MM' format
        entries: One AdjustmentEntry per unit

    Returns:
        AdjustmentSaveResult with saved/deleted counts

    Raises:
        ValidationError: unknown unit or negative amount
    """
    parse_period(billing_month)
    result = AdjustmentSaveResult()

    for entry in entries:
        unit = repos.units.get(entry.unit_id)
        if unit is None or unit.tenant_id != tenant_id:
            raise ValidationError(f"Unit {entry.unit_id} not found")
        amounts = entry.amounts()
        negative = [name for name, value in amounts.items() if value < ZERO]
        if negative:
            raise ValidationError(f"Unit {unit.unit_number}: negative amount for {', '.join(negative)}")

        existing = repos.adjustments.get(unit.id, billing_month)
        if all(value == ZERO for value in amounts.values()):
            if existing is not None:
                repos.adjustments.delete(existing)
                result.deleted += 1
            continue

        if existing is None:
            repos.adjustments.add(BillingAdjustment(
                unit_id=unit.id,
                billing_month=billing_month,
                remarks=entry.remarks,
                **amounts,
            ))
        else:
            for name, value in amounts.items():
                setattr(existing, name, value)
            existing.remarks = entry.remarks
        result.saved += 1
        result.unit_ids.append(unit.id)

    print(f"[OK] Saved {result.saved} adjustment(s) for {billing_month}"
          + (f", deleted {result.deleted}" if result.deleted else ""))
    return result


def apply_sp_assessment(repos, tenant_id: str, billing_month: str, rates: RateSchedule) -> Dict[str, Any]:
    """
    Opts every active unit into the SP assessment for one period, at the
    tenant's flat rate. Other adjustment amounts are left as they are.

    Returns:
        Dict with the rate and the created/updated counts

    Raises:
        ValidationError: the SP assessment rate is not set, or no active units
    """
    parse_period(billing_month)
    amount = calculate_sp_assessment(True, rates)
    if amount <= ZERO:
        raise ValidationError("SP assessment rate is not set. Configure it in the tenant rates first.")

    units = repos.units.list_active(tenant_id)
    if not units:
        raise ValidationError(f"No active units found for tenant {tenant_id}")

    created = 0
    updated = 0
    for unit in units:
        existing = repos.adjustments.get(unit.id, billing_month)
        if existing is None:
            repos.adjustments.add(BillingAdjustment(
                unit_id=unit.id,
                billing_month=billing_month,
                sp_assessment=amount,
                discounts=ZERO,
                other_charges=ZERO,
            ))
            created += 1
        else:
            existing.sp_assessment = amount
            updated += 1

    print(f"[OK] Applied SP assessment ({amount}) to {created + updated} unit(s) for {billing_month}")
    return {"rate": amount, "created": created, "updated": updated, "total_units": len(units)}


def clear_sp_assessment(repos, tenant_id: str, billing_month: str) -> int:
    """Removes the SP assessment from all adjustments of a period. Returns the number cleared."""
    parse_period(billing_month)
    adjustments = repos.adjustments.list_for_period(tenant_id, billing_month)
    for adjustment in adjustments:
        adjustment.sp_assessment = q2(ZERO)
    print(f"[OK] Removed SP assessment from {len(adjustments)} unit(s) for {billing_month}")
    return len(adjustments)
