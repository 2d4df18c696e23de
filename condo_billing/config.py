"""
Application configuration.
Uses pydantic-settings to read environment variables.
"""

from decimal import Decimal
from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    """Application settings from environment variables."""

    # Database
    database_url: str = "sqlite:///./condo_billing.db"

    # API
    api_title: str = "Condo Billing System"
    api_description: str = "Monthly utility and association billing for condominium units"
    api_version: str = "1.0.0"

    # CORS
    cors_allow_origins: List[str] = ["*"]  # Restrict to known domains in production
    cors_allow_credentials: bool = True
    cors_allow_methods: List[str] = ["*"]
    cors_allow_headers: List[str] = ["*"]

    # Default tenant rates (used when a tenant has no settings row yet)
    default_electric_rate: Decimal = Decimal("8.39")
    default_electric_min_charge: Decimal = Decimal("50")
    default_dues_rate: Decimal = Decimal("60")
    default_parking_rate: Decimal = Decimal("60")
    default_sp_assessment_rate: Decimal = Decimal("849.10")
    default_penalty_rate: Decimal = Decimal("0.10")

    # Billing schedule
    statement_day: int = 27  # Statement date: 27th of the billing month
    due_day: int = 6         # Due date: 6th of the following month
    bill_number_prefix: str = "MT"

    # Rounding tolerance for PAID status (1 centavo)
    payment_tolerance: Decimal = Decimal("0.01")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


# Global settings instance
settings = Settings()
