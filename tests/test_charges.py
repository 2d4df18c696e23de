"""
Unit tests for charge calculations.
Covers every water tier boundary (residential and commercial), the electric
minimum charge, dues, parking and reading validation.
"""

import pytest
from dataclasses import FrozenInstanceError
from decimal import Decimal

from condo_billing.core.errors import ValidationError
from condo_billing.models.enums import UnitType
from condo_billing.services.billing.charges import (
    calculate_dues,
    calculate_electric,
    calculate_parking,
    calculate_sp_assessment,
    calculate_water,
    reading_consumption,
    water_tier_breakdown,
    water_tier_table,
)
from condo_billing.services.billing.rates import RateSchedule, TierMode, WaterTier

RATES = RateSchedule.default()


class TestResidentialWater:
    """Residential tier table: 80 / 200 / 370, then +40 / +45 / +50 / +55 per m³."""

    @pytest.mark.parametrize("consumption, expected", [
        (0, "80"),
        (1, "80"),
        (2, "200"),
        (5, "200"),
        (6, "370"),
        (10, "370"),
        (11, "410"),
        (20, "770"),
        (21, "815"),
        (30, "1220"),
        (31, "1270"),
        (40, "1720"),
        (41, "1775"),
        (50, "2270"),
    ])
    def test_tier_boundaries(self, consumption, expected):
        assert calculate_water(consumption, UnitType.RESIDENTIAL, RATES) == Decimal(expected)

    def test_upper_bounds_are_exclusive(self):
        """Test: 5 m³ stays in tier 2 (200), not tier 3 (370)."""
        assert calculate_water(5, UnitType.RESIDENTIAL, RATES) == Decimal("200")
        assert water_tier_breakdown(5, UnitType.RESIDENTIAL, RATES)["tier"] == 2

    def test_fractional_consumption(self):
        assert calculate_water(Decimal("1.5"), UnitType.RESIDENTIAL, RATES) == Decimal("200")
        assert calculate_water(Decimal("10.5"), UnitType.RESIDENTIAL, RATES) == Decimal("370")
        assert calculate_water(Decimal("11.5"), UnitType.RESIDENTIAL, RATES) == Decimal("430")

    def test_negative_consumption_rejected(self):
        with pytest.raises(ValidationError):
            calculate_water(-1, UnitType.RESIDENTIAL, RATES)


class TestCommercialWater:
    """Commercial tier table: 200 / 250 / 740, then +55 / +60 / +65 / +85 per m³."""

    @pytest.mark.parametrize("consumption, expected", [
        (0, "200"),
        (1, "200"),
        (2, "250"),
        (5, "250"),
        (6, "740"),
        (10, "740"),
        (11, "795"),
        (20, "1290"),
        (21, "1350"),
        (30, "1890"),
        (31, "1955"),
        (40, "2540"),
        (41, "2625"),
    ])
    def test_tier_boundaries(self, consumption, expected):
        assert calculate_water(consumption, UnitType.COMMERCIAL, RATES) == Decimal(expected)


class TestWaterTierBreakdown:

    def test_breakdown_of_incremental_tier(self):
        info = water_tier_breakdown(25, UnitType.RESIDENTIAL, RATES)
        assert info["tier"] == 5
        assert info["range"] == "21-30 cu.m"
        assert info["mode"] == TierMode.INCREMENTAL.value
        assert info["amount"] == Decimal("995")

    def test_breakdown_of_first_and_last_tier(self):
        assert water_tier_breakdown(0, UnitType.RESIDENTIAL, RATES)["range"] == "0-1 cu.m"
        assert water_tier_breakdown(2, UnitType.RESIDENTIAL, RATES)["range"] == "2-5 cu.m"
        assert water_tier_breakdown(60, UnitType.RESIDENTIAL, RATES)["range"] == "41+ cu.m"

    def test_tier_table_lists_every_tier(self):
        rows = water_tier_table(UnitType.RESIDENTIAL, RATES)
        assert [row["tier"] for row in rows] == [1, 2, 3, 4, 5, 6, 7]
        assert [row["amount_at_lower_bound"] for row in rows] == [
            Decimal("80"), Decimal("200"), Decimal("370"), Decimal("410"),
            Decimal("815"), Decimal("1270"), Decimal("1775"),
        ]


class TestElectric:
    """Electric: max(kWh × 8.39, 50)."""

    @pytest.mark.parametrize("kwh, expected", [
        (0, "50"),
        (5, "50"),
        (6, "50.34"),
        (100, "839"),
        (115, "964.85"),
    ])
    def test_minimum_charge(self, kwh, expected):
        assert calculate_electric(kwh, RATES) == Decimal(expected)

    def test_negative_consumption_rejected(self):
        with pytest.raises(ValidationError):
            calculate_electric(-5, RATES)


class TestAreaCharges:

    def test_dues(self):
        assert calculate_dues(Decimal("34.5"), RATES) == Decimal("2070.00")

    def test_parking(self):
        assert calculate_parking(Decimal("12.5"), RATES) == Decimal("750.00")
        assert calculate_parking(None, RATES) == Decimal("0.00")
        assert calculate_parking(0, RATES) == Decimal("0.00")

    def test_sp_assessment_is_opt_in(self):
        assert calculate_sp_assessment(True, RATES) == Decimal("849.10")
        assert calculate_sp_assessment(False, RATES) == Decimal("0.00")


class TestReadings:

    def test_consumption(self):
        assert reading_consumption(Decimal("1000"), Decimal("1115")) == Decimal("115")

    def test_regression_rejected(self):
        with pytest.raises(ValidationError):
            reading_consumption(1115, 1000)

    def test_negative_reading_rejected(self):
        with pytest.raises(ValidationError):
            reading_consumption(-1, 10)


class TestRateSchedule:

    def test_penalty_rate_must_be_fraction(self):
        with pytest.raises(ValidationError):
            RateSchedule.create(electric_rate="8.39", electric_min_charge=50, dues_rate=60, penalty_rate=10)

    def test_negative_rate_rejected(self):
        with pytest.raises(ValidationError):
            RateSchedule.create(electric_rate="-1", electric_min_charge=50, dues_rate=60, penalty_rate="0.1")

    def test_bounded_last_tier_rejected(self):
        tiers = [
            WaterTier(Decimal("1"), Decimal("80")),
            WaterTier(Decimal("6"), Decimal("200")),
        ]
        with pytest.raises(ValidationError):
            RateSchedule.create(
                electric_rate="8.39", electric_min_charge=50, dues_rate=60, penalty_rate="0.1",
                water_residential=tiers
            )

    def test_schedule_is_immutable(self):
        with pytest.raises(FrozenInstanceError):
            RATES.electric_rate = Decimal("9")
