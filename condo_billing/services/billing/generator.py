"""
Monthly bill generation run.

The bill for month X uses the meter readings of month X-1. For every active
unit the run computes electric, water, dues and parking charges, adds the
bookkeeper's adjustments and the compounding penalty on older unpaid bills,
and applies the unit's advance credit.

preview=True returns DRAFT previews only; preview=False persists the bills,
numbers them 'MT-YYYYMM-NNNN' and consumes the advance credit they used.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional

from condo_billing.config import settings
from condo_billing.core.billing_period import (
    due_date, parse_period, reading_period_for, statement_date
)
from condo_billing.core.errors import ValidationError
from condo_billing.core.money import ZERO, money_sum, q2, to_decimal
from condo_billing.models.billing import Bill
from condo_billing.models.enums import BillStatus, BillType, UtilityType
from condo_billing.services.billing.assembler import BillComponents, apply_advances, assemble_bill
from condo_billing.services.billing.charges import (
    calculate_dues, calculate_electric, calculate_parking, calculate_water,
    reading_consumption, water_tier_breakdown
)
from condo_billing.services.billing.lifecycle import is_outstanding
from condo_billing.services.billing.penalty import PenaltyResult, penalty_for_period
from condo_billing.services.billing.rates import RateSchedule


@dataclass
class BillPreview:
    """Computed bill of one unit, before it is saved."""
    unit_id: int
    unit_number: str
    billing_month: str
    components: BillComponents
    electric_consumption: Decimal = ZERO
    water_consumption: Decimal = ZERO
    water_tier: Optional[Dict[str, Any]] = None
    penalty: PenaltyResult = field(default_factory=PenaltyResult)
    previous_balance: Decimal = ZERO  # Informational, not part of the total
    warnings: List[str] = field(default_factory=list)
    status: BillStatus = BillStatus.DRAFT

    @property
    def total(self) -> Decimal:
        return self.components.total

    def as_dict(self) -> Dict[str, Any]:
        return {
            "unit_id": self.unit_id,
            "unit_number": self.unit_number,
            "billing_month": self.billing_month,
            "status": self.status.value,
            "electric_consumption": str(self.electric_consumption),
            "water_consumption": str(self.water_consumption),
            "water_tier": self.water_tier,
            "components": {name: str(value) for name, value in self.components.as_dict().items()},
            "previous_balance": str(q2(self.previous_balance)),
            "total": str(self.total),
            "warnings": list(self.warnings),
        }


@dataclass
class GenerationResult:
    billing_month: str
    preview: bool
    previews: List[BillPreview] = field(default_factory=list)
    bills: List[Bill] = field(default_factory=list)
    replaced: int = 0

    @property
    def units_with_warnings(self) -> int:
        return sum(1 for p in self.previews if p.warnings)

    @property
    def total_amount(self) -> Decimal:
        return money_sum(p.total for p in self.previews)


def _consumption(reading) -> Decimal:
    if reading is None:
        return ZERO
    return reading_consumption(reading.previous_reading, reading.present_reading)


def preview_unit_bill(
    unit,
    billing_month: str,
    rates: RateSchedule,
    electric_reading=None,
    water_reading=None,
    adjustment=None,
    prior_bills=(),
    advance_dues=ZERO,
    advance_utilities=ZERO,
) -> BillPreview:
    """
    Computes the bill of one unit for billing_month. No database access.

    Args:
        unit: Unit being billed
        billing_month: Period being generated ('YYYY-MM')
        rates: Tenant rate schedule
        electric_reading: Electric MeterReading of the previous month (None if missing)
        water_reading: Water MeterReading of the previous month (None if missing)
        adjustment: BillingAdjustment for billing_month (None if none)
        prior_bills: The unit's bills before billing_month
        advance_dues: Advance dues credit available
        advance_utilities: Advance utilities credit available

    Returns:
        BillPreview in DRAFT status
    """
    warnings = []
    if electric_reading is None:
        warnings.append("Missing electric meter reading")
    if water_reading is None:
        warnings.append("Missing water meter reading")

    electric_consumption = _consumption(electric_reading)
    water_consumption = _consumption(water_reading)
    penalty = penalty_for_period(prior_bills, billing_month, rates.penalty_rate)

    components = BillComponents(
        electric_amount=calculate_electric(electric_consumption, rates),
        water_amount=calculate_water(water_consumption, unit.unit_type, rates),
        dues_amount=calculate_dues(unit.area, rates),
        parking_fee=calculate_parking(unit.parking_area, rates),
        sp_assessment=to_decimal(adjustment.sp_assessment) if adjustment else ZERO,
        penalty_amount=penalty.penalty_amount,
        other_charges=to_decimal(adjustment.other_charges) if adjustment else ZERO,
        discounts=to_decimal(adjustment.discounts) if adjustment else ZERO,
    )
    components = apply_advances(components, advance_dues, advance_utilities)
    if components.total < ZERO:
        warnings.append("Discounts exceed charges")

    return BillPreview(
        unit_id=unit.id,
        unit_number=unit.unit_number,
        billing_month=billing_month,
        components=components,
        electric_consumption=electric_consumption,
        water_consumption=water_consumption,
        water_tier=_water_tier_info(water_consumption, unit, rates),
        penalty=penalty,
        previous_balance=money_sum(b.balance for b in prior_bills if is_outstanding(b)),
        warnings=warnings,
    )


def _water_tier_info(consumption: Decimal, unit, rates: RateSchedule) -> Dict[str, Any]:
    info = water_tier_breakdown(consumption, unit.unit_type, rates)
    return {key: str(value) if isinstance(value, Decimal) else value for key, value in info.items()}


def format_bill_number(billing_month: str, sequence: int) -> str:
    year, month = parse_period(billing_month)
    return f"{settings.bill_number_prefix}-{year:04d}{month:02d}-{sequence:04d}"


def _released_advances(existing: List[Bill]) -> Dict[int, tuple]:
    """Advance credit consumed by bills about to be regenerated, per unit."""
    released = {}
    for bill in existing:
        dues, utilities = released.get(bill.unit_id, (ZERO, ZERO))
        released[bill.unit_id] = (
            dues + to_decimal(bill.advance_dues_applied),
            utilities + to_decimal(bill.advance_util_applied),
        )
    return released


def generate_bills_for_period(
    repos,
    tenant_id: str,
    billing_month: str,
    rates: RateSchedule,
    preview: bool = True,
    regenerate: bool = False,
) -> GenerationResult:
    """
    Generates the bills of all active units of a tenant for one period.

    Args:
        repos: Repositories (units, readings, adjustments, bills, advances)
        tenant_id: Tenant (association) being billed
        billing_month: Period in 'YYYY-MM' format
        rates: Tenant rate schedule
        preview: Only compute DRAFT previews, write nothing
        regenerate: Replace existing REGULAR bills of the period

    Returns:
        GenerationResult with previews and, when committed, the new bills

    Raises:
        ValidationError: bills already exist (without regenerate), or an
            existing bill is locked, paid, or has BillPayment rows. Rows of
            voided payments count: they stay attached to the bill as history.
    """
    parse_period(billing_month)
    readings_month = reading_period_for(billing_month)
    result = GenerationResult(billing_month=billing_month, preview=preview)

    existing = repos.bills.list_for_period(tenant_id, billing_month, BillType.REGULAR)
    if existing and (regenerate or not preview):
        if not regenerate:
            raise ValidationError(
                f"Bills already exist for {billing_month}. Found {len(existing)} existing bill(s). "
                f"Use regenerate option to replace them."
            )
        blocked = [b.bill_number or str(b.id) for b in existing if b.is_locked or to_decimal(b.paid_amount) > ZERO]
        if blocked:
            raise ValidationError(
                f"Cannot regenerate {billing_month}: bills already locked or paid ({', '.join(blocked)})"
            )
        # Rows of voided payments are kept as history and still reference the bill
        with_history = [b.bill_number or str(b.id) for b in existing if b.bill_payments]
        if with_history:
            raise ValidationError(
                f"Cannot regenerate {billing_month}: bills have payment history, including voided "
                f"payments ({', '.join(with_history)})"
            )
    released = _released_advances(existing) if regenerate else {}

    units = repos.units.list_active(tenant_id)
    for unit in units:
        advance = repos.advances.get_for_unit(unit.id)
        extra_dues, extra_utilities = released.get(unit.id, (ZERO, ZERO))
        prior_bills = repos.bills.list_for_unit(unit.id, before_month=billing_month)
        result.previews.append(preview_unit_bill(
            unit,
            billing_month,
            rates,
            electric_reading=repos.readings.get(unit.id, readings_month, UtilityType.ELECTRIC),
            water_reading=repos.readings.get(unit.id, readings_month, UtilityType.WATER),
            adjustment=repos.adjustments.get(unit.id, billing_month),
            prior_bills=prior_bills,
            advance_dues=(to_decimal(advance.advance_dues) if advance else ZERO) + extra_dues,
            advance_utilities=(to_decimal(advance.advance_utilities) if advance else ZERO) + extra_utilities,
        ))

    print(f"[INFO] Computed {len(result.previews)} bill(s) for {billing_month} "
          f"(readings from {readings_month}, {result.units_with_warnings} with warnings)")
    for item in result.previews:
        for warning in item.warnings:
            print(f"  [WARNING] {item.unit_number}: {warning}")

    if preview:
        return result

    for bill in existing:
        dues, utilities = released.get(bill.unit_id, (ZERO, ZERO))
        if dues > ZERO or utilities > ZERO:
            advance = repos.advances.lock_for_unit(bill.unit_id)
            advance.advance_dues = q2(to_decimal(advance.advance_dues) + dues)
            advance.advance_utilities = q2(to_decimal(advance.advance_utilities) + utilities)
            released[bill.unit_id] = (ZERO, ZERO)
        repos.bills.delete(bill)
    result.replaced = len(existing)
    if existing:
        print(f"[INFO] Deleted {len(existing)} existing bill(s) for regeneration")

    sequence = repos.bills.last_bill_sequence(tenant_id)
    for item in result.previews:
        sequence += 1
        bill = assemble_bill(
            unit_id=item.unit_id,
            billing_month=billing_month,
            components=item.components,
            statement_date=statement_date(billing_month),
            due_date=due_date(billing_month),
            bill_number=format_bill_number(billing_month, sequence),
        )
        repos.bills.add(bill)
        result.bills.append(bill)

        used_dues = item.components.advance_dues_applied
        used_utilities = item.components.advance_util_applied
        if used_dues > ZERO or used_utilities > ZERO:
            advance = repos.advances.lock_for_unit(item.unit_id)
            advance.advance_dues = q2(max(ZERO, to_decimal(advance.advance_dues) - used_dues))
            advance.advance_utilities = q2(max(ZERO, to_decimal(advance.advance_utilities) - used_utilities))

    print(f"[OK] Generated {len(result.bills)} bill(s) for {billing_month}, "
          f"total {q2(result.total_amount)}")
    return result


def rates_for_tenant(repos, tenant_id: str) -> RateSchedule:
    """Tenant's configured rates, or the default tariff when none are stored."""
    row = repos.settings.get(tenant_id)
    if row is None:
        print(f"[INFO] No rate settings for tenant {tenant_id}, using default rates")
        return RateSchedule.default()
    return RateSchedule.from_settings(row)
