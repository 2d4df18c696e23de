"""
Charge calculations for unit bills.

Converts meter consumption or floor area into peso amounts using a
RateSchedule. Pure functions, no database access.

Water boundaries (validated cell-by-cell against the association's sheet):
- tier 1: cons <= T1max (inclusive)
- tier k: cons < Tkmax (exclusive), checked in order
- last tier: unbounded
An inclusive bound on tiers 2-6 overcharges every boundary reading
(5 m³ billed 370 instead of 200), so only tier 1 uses <=.
"""

from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from condo_billing.core.errors import ValidationError
from condo_billing.core.money import ZERO, q2, to_decimal
from condo_billing.models.enums import UnitType
from condo_billing.services.billing.rates import RateSchedule, TierMode, WaterTier


def _non_negative(value: Any, label: str) -> Decimal:
    amount = to_decimal(value)
    if amount < ZERO:
        raise ValidationError(f"{label} cannot be negative: {amount}")
    return amount


def reading_consumption(previous_reading: Any, present_reading: Any) -> Decimal:
    """
    Calculates consumption as the difference between two meter readings.

    Args:
        previous_reading: Reading at the start of the period
        present_reading: Reading at the end of the period

    Returns:
        Consumption (present - previous)

    Raises:
        ValidationError: negative readings or a present reading below the previous one
    """
    previous = _non_negative(previous_reading, "Previous reading")
    present = _non_negative(present_reading, "Present reading")
    if present < previous:
        raise ValidationError(
            f"Reading regression: present reading {present} is lower than previous reading {previous}"
        )
    return present - previous


def calculate_electric(consumption: Any, rates: RateSchedule) -> Decimal:
    """
    Electric charge: max(consumption × rate, minimum charge).

    Example at 8.39/kWh with a 50 minimum: 5 kWh -> 50 (41.95 < 50), 6 kWh -> 50.34.
    """
    kwh = _non_negative(consumption, "Electric consumption")
    return q2(max(kwh * rates.electric_rate, rates.electric_min_charge))


def _tier_amount(
    tier: WaterTier,
    consumption: Decimal,
    base: Decimal,
    previous_bound: Optional[Decimal]
) -> Decimal:
    if tier.mode == TierMode.FIXED:
        return tier.rate
    offset = previous_bound - 1 if previous_bound is not None else ZERO
    return base + (consumption - offset) * tier.rate


def _locate_water_tier(
    consumption: Decimal,
    tiers: Tuple[WaterTier, ...]
) -> Tuple[int, WaterTier, Decimal, Optional[Decimal]]:
    """
    Finds the tier for a consumption value.

    Returns:
        Tuple (tier_number, tier, base, previous_bound) where base is the
        previous tier's value at its own top boundary
    """
    base = ZERO
    previous_bound = None
    for number, tier in enumerate(tiers, start=1):
        bound = tier.upper_bound
        if number == 1:
            in_tier = consumption <= bound
        else:
            in_tier = bound is None or consumption < bound
        if in_tier:
            return number, tier, base, previous_bound

        # Chain from the exact value at this tier's top boundary
        top = bound if number == 1 else bound - 1
        base = _tier_amount(tier, top, base, previous_bound)
        previous_bound = bound

    # Unreachable for a validated table (last tier is unbounded)
    raise ValidationError("Water tier table has no unbounded last tier")


def calculate_water(consumption: Any, unit_type: UnitType, rates: RateSchedule) -> Decimal:
    """
    Tiered water charge.

    Args:
        consumption: Water consumption in m³
        unit_type: RESIDENTIAL or COMMERCIAL (selects the tier table)
        rates: Rate schedule

    Returns:
        Water charge rounded to centavos
    """
    cons = _non_negative(consumption, "Water consumption")
    _, tier, base, previous_bound = _locate_water_tier(cons, rates.water_tiers(unit_type))
    return q2(_tier_amount(tier, cons, base, previous_bound))


def _fmt(value: Decimal) -> str:
    return format(value.normalize(), "f")


def water_tier_breakdown(consumption: Any, unit_type: UnitType, rates: RateSchedule) -> Dict[str, Any]:
    """
    Describes the tier used for a water charge (for statements).

    Returns:
        {'tier': int, 'range': str, 'rate': Decimal, 'mode': str, 'amount': Decimal}
    """
    cons = _non_negative(consumption, "Water consumption")
    tiers = rates.water_tiers(unit_type)
    number, tier, base, previous_bound = _locate_water_tier(cons, tiers)

    if number == 1:
        label = f"0-{_fmt(tier.upper_bound)} cu.m"
    elif tier.upper_bound is None:
        label = f"{_fmt(previous_bound)}+ cu.m"
    else:
        lower = previous_bound + 1 if number == 2 else previous_bound
        label = f"{_fmt(lower)}-{_fmt(tier.upper_bound - 1)} cu.m"

    return {
        "tier": number,
        "range": label,
        "rate": tier.rate,
        "mode": tier.mode.value,
        "amount": q2(_tier_amount(tier, cons, base, previous_bound)),
    }


def calculate_dues(area: Any, rates: RateSchedule) -> Decimal:
    """Association dues: area (m²) × dues rate."""
    return q2(_non_negative(area, "Unit area") * rates.dues_rate)


def calculate_parking(parking_area: Any, rates: RateSchedule) -> Decimal:
    """Parking fee: parking area (m²) × parking rate, 0 when the unit has no parking."""
    if parking_area is None:
        return q2(ZERO)
    return q2(_non_negative(parking_area, "Parking area") * rates.parking_rate)


def calculate_sp_assessment(enabled: bool, rates: RateSchedule) -> Decimal:
    """SP assessment: flat rate, opt-in per unit and period."""
    return q2(rates.sp_assessment_rate) if enabled else q2(ZERO)


def water_tier_table(unit_type: UnitType, rates: RateSchedule) -> List[Dict[str, Any]]:
    """Every tier of a table with its boundary amounts, for the rates screen."""
    rows = []
    tiers = rates.water_tiers(unit_type)
    for number, tier in enumerate(tiers, start=1):
        if tier.upper_bound is None:
            first = tiers[number - 2].upper_bound
        elif number == 1:
            first = ZERO
        else:
            first = tiers[number - 2].upper_bound + (1 if number == 2 else 0)
        rows.append({
            "tier": number,
            "upper_bound": tier.upper_bound,
            "mode": tier.mode.value,
            "rate": tier.rate,
            "amount_at_lower_bound": calculate_water(first, unit_type, rates),
        })
    return rows
