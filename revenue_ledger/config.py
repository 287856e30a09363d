"""
Application configuration.

All configuration is loaded from environment variables.
Rate tables are JSON objects, e.g.
COMMISSION_RATES='{"subscription": 0.10, "course_enrollment": 0.15}'.
"""

import json
import os
from decimal import Decimal
from functools import lru_cache

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

# Load .env file into environment variables
load_dotenv()


def _json_env(name: str) -> dict:
    raw = os.getenv(name, "").strip()
    if not raw:
        return {}
    value = json.loads(raw)
    if not isinstance(value, dict):
        raise ValueError(f"{name} must be a JSON object")
    return value


class Settings:
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "Revenue Ledger"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    # Database
    DATABASE_URL: str = os.getenv(
        "DATABASE_URL",
        "sqlite:///./revenue_ledger.db"
    )

    # Environment
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")

    # Billing
    DEFAULT_CURRENCY: str = os.getenv("DEFAULT_CURRENCY", "USD").upper()
    COMMISSION_RATES: dict = _json_env("COMMISSION_RATES")
    GATEWAY_FEE_RATES: dict = _json_env("GATEWAY_FEE_RATES")
    CATEGORY_MAPPINGS: dict = _json_env("CATEGORY_MAPPINGS")


class RevenueConfig(BaseModel):
    """
    Rate tables and mappings consumed by the ledger services.

    Rates are fractions (0.10 for 10%). Business decisions about the
    rates themselves belong to the caller.
    """
    default_currency: str = Field(default="USD", min_length=3, max_length=3)
    commission_rates: dict[str, Decimal] = Field(default_factory=dict)
    gateway_fee_rates: dict[str, Decimal] = Field(default_factory=dict)
    category_mappings: dict[str, str] = Field(default_factory=dict)

    @field_validator("commission_rates", "gateway_fee_rates")
    @classmethod
    def rates_between_zero_and_one(cls, v: dict[str, Decimal]) -> dict[str, Decimal]:
        for key, rate in v.items():
            if rate < 0 or rate > 1:
                raise ValueError(f"rate for '{key}' must be between 0 and 1")
        return v

    def commission_rate_for(self, category: str) -> Decimal:
        return self.commission_rates.get(category, Decimal("0"))

    def gateway_fee_rate_for(self, gateway: str) -> Decimal:
        return self.gateway_fee_rates.get(gateway, Decimal("0"))

    @classmethod
    def from_settings(cls, settings: Settings) -> "RevenueConfig":
        return cls(
            default_currency=settings.DEFAULT_CURRENCY,
            commission_rates=settings.COMMISSION_RATES,
            gateway_fee_rates=settings.GATEWAY_FEE_RATES,
            category_mappings=settings.CATEGORY_MAPPINGS,
        )


@lru_cache()
def get_settings() -> Settings:
    """
    Return cached settings instance.

    Using lru_cache means the Settings object is created once
    and reused for all subsequent calls.
    """
    return Settings()


@lru_cache()
def get_revenue_config() -> RevenueConfig:
    return RevenueConfig.from_settings(get_settings())
