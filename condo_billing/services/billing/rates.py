"""
Rate schedules for a billing run.

A RateSchedule is an immutable, validated value object built once per tenant
per billing run. All rates are Decimal.

Water tier tables follow the association's spreadsheet:
- tier 1 has an inclusive upper bound (cons <= max),
- every later tier has an exclusive upper bound (cons < max),
- the last tier is unbounded.
FIXED tiers charge a flat amount, INCREMENTAL tiers charge per m³ above the
previous tier's top value.
"""

import enum
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Sequence, Tuple

from condo_billing.config import settings
from condo_billing.core.errors import ValidationError
from condo_billing.core.money import ZERO, to_decimal
from condo_billing.models.enums import UnitType


class TierMode(str, enum.Enum):
    FIXED = "FIXED"
    INCREMENTAL = "INCREMENTAL"


@dataclass(frozen=True)
class WaterTier:
    upper_bound: Optional[Decimal]  # None = unbounded
    rate: Decimal                   # Flat amount (FIXED) or peso per m³ (INCREMENTAL)
    mode: TierMode = TierMode.FIXED


def _tiers(rows: Sequence[Tuple[Optional[object], object, TierMode]]) -> Tuple[WaterTier, ...]:
    return tuple(
        WaterTier(None if bound is None else to_decimal(bound), to_decimal(rate), mode)
        for bound, rate, mode in rows
    )


RESIDENTIAL_WATER_TIERS = _tiers([
    (1, 80, TierMode.FIXED),           # <=1 m³ -> 80
    (6, 200, TierMode.FIXED),          # 2-5 m³ -> 200
    (11, 370, TierMode.FIXED),         # 6-10 m³ -> 370
    (21, 40, TierMode.INCREMENTAL),    # 11-20 m³ -> 370 + (cons-10)*40
    (31, 45, TierMode.INCREMENTAL),    # 21-30 m³ -> 770 + (cons-20)*45
    (41, 50, TierMode.INCREMENTAL),    # 31-40 m³ -> 1220 + (cons-30)*50
    (None, 55, TierMode.INCREMENTAL),  # >40 m³ -> 1720 + (cons-40)*55
])

COMMERCIAL_WATER_TIERS = _tiers([
    (1, 200, TierMode.FIXED),
    (6, 250, TierMode.FIXED),
    (11, 740, TierMode.FIXED),
    (21, 55, TierMode.INCREMENTAL),
    (31, 60, TierMode.INCREMENTAL),
    (41, 65, TierMode.INCREMENTAL),
    (None, 85, TierMode.INCREMENTAL),
])


def validate_water_tiers(tiers: Sequence[WaterTier], label: str) -> None:
    """
    Checks a water tier table.

    Raises:
        ValidationError: empty table, bounded last tier, unbounded middle tier,
            non-increasing bounds or negative rates
    """
    if len(tiers) < 2:
        raise ValidationError(f"{label} water table needs at least 2 tiers")
    if tiers[-1].upper_bound is not None:
        raise ValidationError(f"{label} water table: last tier must be unbounded")

    previous_bound = None
    for index, tier in enumerate(tiers, start=1):
        if tier.rate < ZERO:
            raise ValidationError(f"{label} water tier {index}: rate cannot be negative")
        if not isinstance(tier.mode, TierMode):
            raise ValidationError(f"{label} water tier {index}: unknown mode {tier.mode!r}")
        if index == len(tiers):
            break
        if tier.upper_bound is None:
            raise ValidationError(f"{label} water tier {index}: only the last tier can be unbounded")
        if tier.upper_bound < ZERO:
            raise ValidationError(f"{label} water tier {index}: bound cannot be negative")
        if previous_bound is not None and tier.upper_bound <= previous_bound:
            raise ValidationError(
                f"{label} water tier {index}: bound {tier.upper_bound} must be greater than {previous_bound}"
            )
        previous_bound = tier.upper_bound


@dataclass(frozen=True)
class RateSchedule:
    """Tenant rates for one billing run. Build with RateSchedule.create()."""

    electric_rate: Decimal
    electric_min_charge: Decimal
    water_residential: Tuple[WaterTier, ...]
    water_commercial: Tuple[WaterTier, ...]
    dues_rate: Decimal
    parking_rate: Decimal
    sp_assessment_rate: Decimal
    penalty_rate: Decimal

    @classmethod
    def create(
        cls,
        electric_rate,
        electric_min_charge,
        dues_rate,
        penalty_rate,
        parking_rate=ZERO,
        sp_assessment_rate=ZERO,
        water_residential: Sequence[WaterTier] = RESIDENTIAL_WATER_TIERS,
        water_commercial: Sequence[WaterTier] = COMMERCIAL_WATER_TIERS,
    ) -> "RateSchedule":
        """
        Validated constructor.

        Raises:
            ValidationError: when any rate is negative, the penalty rate is
                not a fraction below 1 or a water table is malformed
        """
        schedule = cls(
            electric_rate=to_decimal(electric_rate),
            electric_min_charge=to_decimal(electric_min_charge),
            water_residential=tuple(water_residential),
            water_commercial=tuple(water_commercial),
            dues_rate=to_decimal(dues_rate),
            parking_rate=to_decimal(parking_rate),
            sp_assessment_rate=to_decimal(sp_assessment_rate),
            penalty_rate=to_decimal(penalty_rate),
        )
        schedule.validate()
        return schedule

    @classmethod
    def default(cls) -> "RateSchedule":
        """Reference tariff (configurable defaults + spreadsheet water tables)."""
        return cls.create(
            electric_rate=settings.default_electric_rate,
            electric_min_charge=settings.default_electric_min_charge,
            dues_rate=settings.default_dues_rate,
            penalty_rate=settings.default_penalty_rate,
            parking_rate=settings.default_parking_rate,
            sp_assessment_rate=settings.default_sp_assessment_rate,
        )

    @classmethod
    def from_settings(cls, row) -> "RateSchedule":
        """
        Builds a schedule from a TenantSettings row.

        Args:
            row: TenantSettings (or any object with the same attributes)
        """
        def table(prefix: str) -> Tuple[WaterTier, ...]:
            modes = [TierMode.FIXED] * 3 + [TierMode.INCREMENTAL] * 4
            rows = []
            for number in range(1, 8):
                bound = getattr(row, f"{prefix}_tier{number}_max") if number < 7 else None
                rows.append((bound, getattr(row, f"{prefix}_tier{number}_rate"), modes[number - 1]))
            return _tiers(rows)

        return cls.create(
            electric_rate=row.electric_rate,
            electric_min_charge=row.electric_min_charge,
            dues_rate=row.association_dues_rate,
            penalty_rate=row.penalty_rate,
            parking_rate=row.parking_rate,
            sp_assessment_rate=row.sp_assessment_rate,
            water_residential=table("water_res"),
            water_commercial=table("water_com"),
        )

    def validate(self) -> None:
        for name in ("electric_rate", "electric_min_charge", "dues_rate",
                     "parking_rate", "sp_assessment_rate", "penalty_rate"):
            if getattr(self, name) < ZERO:
                raise ValidationError(f"{name} cannot be negative")
        if self.penalty_rate >= Decimal("1"):
            raise ValidationError("penalty_rate must be a fraction (e.g. 0.10 for 10%)")
        validate_water_tiers(self.water_residential, "Residential")
        validate_water_tiers(self.water_commercial, "Commercial")

    def water_tiers(self, unit_type: UnitType) -> Tuple[WaterTier, ...]:
        if UnitType(unit_type) == UnitType.RESIDENTIAL:
            return self.water_residential
        return self.water_commercial

    def to_dict(self) -> dict:
        """Plain representation for API responses (money as strings)."""
        def tiers(table):
            return [
                {
                    "upper_bound": None if t.upper_bound is None else str(t.upper_bound),
                    "rate": str(t.rate),
                    "mode": t.mode.value,
                }
                for t in table
            ]

        return {
            "electric_rate": str(self.electric_rate),
            "electric_min_charge": str(self.electric_min_charge),
            "dues_rate": str(self.dues_rate),
            "parking_rate": str(self.parking_rate),
            "sp_assessment_rate": str(self.sp_assessment_rate),
            "penalty_rate": str(self.penalty_rate),
            "water_residential": tiers(self.water_residential),
            "water_commercial": tiers(self.water_commercial),
        }
