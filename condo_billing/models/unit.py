"""
SQLAlchemy models for units and their inputs.
Defines tables: units, tenant_settings, meter_readings, billing_adjustments.
"""

from sqlalchemy import (
    Column, String, Integer, Boolean, Numeric, Enum, ForeignKey, UniqueConstraint
)
from sqlalchemy.orm import relationship

from condo_billing.core.database import Base
from condo_billing.models.enums import UnitType, UtilityType


class Unit(Base):
    """Condominium units."""
    __tablename__ = "units"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(String(50), nullable=False, index=True)  # Owning organization
    unit_number = Column(String(50), nullable=False)  # e.g. 'M2-2F-16'
    floor_level = Column(String(20), nullable=True)
    unit_type = Column(Enum(UnitType), nullable=False, default=UnitType.RESIDENTIAL)
    area = Column(Numeric(12, 2), nullable=False, default=0)  # m²
    parking_area = Column(Numeric(12, 2), nullable=False, default=0)  # m², 0 if no parking
    owner_name = Column(String(200), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    readings = relationship("MeterReading", back_populates="unit", cascade="all, delete-orphan")
    bills = relationship("Bill", back_populates="unit")
    payments = relationship("Payment", back_populates="unit")
    advance_balance = relationship("UnitAdvanceBalance", back_populates="unit", uselist=False)

    __table_args__ = (
        UniqueConstraint("tenant_id", "unit_number", name="uq_unit_tenant_number"),
    )


class TenantSettings(Base):
    """
    Per-tenant rates.
    Converted into an immutable RateSchedule for each billing run.

    Water tiers: *_max are the tier boundaries (tier 1 inclusive, the rest
    exclusive), tiers 1-3 are fixed amounts and tiers 4-7 are per m³.
    """
    __tablename__ = "tenant_settings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(String(50), unique=True, nullable=False)

    electric_rate = Column(Numeric(12, 4), nullable=False)  # peso / kWh
    electric_min_charge = Column(Numeric(12, 2), nullable=False)
    association_dues_rate = Column(Numeric(12, 4), nullable=False)  # peso / m²
    parking_rate = Column(Numeric(12, 4), nullable=False)  # peso / m²
    sp_assessment_rate = Column(Numeric(12, 2), nullable=False)  # flat
    penalty_rate = Column(Numeric(6, 4), nullable=False)  # fraction, 0.10 = 10%

    # Residential water
    water_res_tier1_max = Column(Numeric(10, 2), nullable=False, default=1)
    water_res_tier1_rate = Column(Numeric(12, 2), nullable=False, default=80)
    water_res_tier2_max = Column(Numeric(10, 2), nullable=False, default=6)
    water_res_tier2_rate = Column(Numeric(12, 2), nullable=False, default=200)
    water_res_tier3_max = Column(Numeric(10, 2), nullable=False, default=11)
    water_res_tier3_rate = Column(Numeric(12, 2), nullable=False, default=370)
    water_res_tier4_max = Column(Numeric(10, 2), nullable=False, default=21)
    water_res_tier4_rate = Column(Numeric(12, 2), nullable=False, default=40)
    water_res_tier5_max = Column(Numeric(10, 2), nullable=False, default=31)
    water_res_tier5_rate = Column(Numeric(12, 2), nullable=False, default=45)
    water_res_tier6_max = Column(Numeric(10, 2), nullable=False, default=41)
    water_res_tier6_rate = Column(Numeric(12, 2), nullable=False, default=50)
    water_res_tier7_rate = Column(Numeric(12, 2), nullable=False, default=55)

    # Commercial water
    water_com_tier1_max = Column(Numeric(10, 2), nullable=False, default=1)
    water_com_tier1_rate = Column(Numeric(12, 2), nullable=False, default=200)
    water_com_tier2_max = Column(Numeric(10, 2), nullable=False, default=6)
    water_com_tier2_rate = Column(Numeric(12, 2), nullable=False, default=250)
    water_com_tier3_max = Column(Numeric(10, 2), nullable=False, default=11)
    water_com_tier3_rate = Column(Numeric(12, 2), nullable=False, default=740)
    water_com_tier4_max = Column(Numeric(10, 2), nullable=False, default=21)
    water_com_tier4_rate = Column(Numeric(12, 2), nullable=False, default=55)
    water_com_tier5_max = Column(Numeric(10, 2), nullable=False, default=31)
    water_com_tier5_rate = Column(Numeric(12, 2), nullable=False, default=60)
    water_com_tier6_max = Column(Numeric(10, 2), nullable=False, default=41)
    water_com_tier6_rate = Column(Numeric(12, 2), nullable=False, default=65)
    water_com_tier7_rate = Column(Numeric(12, 2), nullable=False, default=85)


class MeterReading(Base):
    """Electric and water meter readings, one per unit per period per utility."""
    __tablename__ = "meter_readings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    unit_id = Column(Integer, ForeignKey("units.id"), nullable=False, index=True)
    billing_month = Column(String(7), nullable=False)  # 'YYYY-MM'
    utility = Column(Enum(UtilityType), nullable=False)
    previous_reading = Column(Numeric(12, 2), nullable=False)
    present_reading = Column(Numeric(12, 2), nullable=False)
    consumption = Column(Numeric(12, 2), nullable=False)  # present - previous, >= 0

    unit = relationship("Unit", back_populates="readings")

    __table_args__ = (
        UniqueConstraint("unit_id", "billing_month", "utility", name="uq_reading_unit_month_utility"),
    )


class BillingAdjustment(Base):
    """
    Per-period adjustments entered by the bookkeeper
    (SP assessment opt-in, discounts, other charges).
    """
    __tablename__ = "billing_adjustments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    unit_id = Column(Integer, ForeignKey("units.id"), nullable=False, index=True)
    billing_month = Column(String(7), nullable=False)  # 'YYYY-MM'
    sp_assessment = Column(Numeric(12, 2), nullable=False, default=0)
    discounts = Column(Numeric(12, 2), nullable=False, default=0)
    other_charges = Column(Numeric(12, 2), nullable=False, default=0)
    remarks = Column(String(500), nullable=True)

    __table_args__ = (
        UniqueConstraint("unit_id", "billing_month", name="uq_adjustment_unit_month"),
    )
