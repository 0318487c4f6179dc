from pydantic_settings import BaseSettings
from pydantic import field_validator
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional, Dict
from functools import lru_cache
import json


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str

    # Database Connection Pool Settings
    DB_POOL_SIZE: int = 10  # Base number of connections in pool
    DB_MAX_OVERFLOW: int = 20  # Extra connections allowed beyond pool_size
    DB_POOL_TIMEOUT: int = 30  # Seconds to wait for connection from pool
    DB_POOL_RECYCLE: int = 1800  # Recycle connections after 30 minutes

    # JWT Settings (tokens are issued by the identity service)
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # App Settings
    APP_NAME: str = "Storefront Referral Engine"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # CORS - accepts JSON string, comma-separated, or list
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # Email/SMTP Settings
    SMTP_HOST: str = "smtp.gmail.com"
    SMTP_PORT: int = 587
    SMTP_USER: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_FROM_EMAIL: str = ""  # Defaults to SMTP_USER
    SMTP_FROM_NAME: str = "Shri Balaji Vastralya"
    NOTIFICATIONS_ENABLED: bool = True
    REFERRAL_ADMIN_EMAIL: str = ""  # Receives commission shortfall alerts

    # Referral Program
    REFERRAL_ENABLED: bool = True
    REFERRAL_CODE_PREFIX: str = "SHRIBALAJI"
    REFERRAL_CODE_MAX_ATTEMPTS: int = 10
    REFERRAL_VALIDITY_DAYS: int = 30
    REFERRAL_MIN_ORDER_AMOUNT: Decimal = Decimal("0")

    # Commission (percentages)
    COMMISSION_BASE_RATE: Decimal = Decimal("5")  # Regular users
    COMMISSION_TIER_RATES: Dict[str, Decimal] = {
        "bronze": Decimal("5"),
        "silver": Decimal("6"),
        "gold": Decimal("7"),
        "platinum": Decimal("8"),
        "diamond": Decimal("10"),
    }
    # Converted referrals needed to reach each influencer tier
    TIER_THRESHOLDS: Dict[str, int] = {
        "bronze": 0,
        "silver": 5,
        "gold": 15,
        "platinum": 30,
        "diamond": 50,
    }
    COMMISSION_MATURITY_DAYS: int = 7  # Return window before commission is withdrawable

    # Payouts
    MIN_PAYOUT_AMOUNT: Decimal = Decimal("500")
    PAYOUT_KYC_REQUIRED: bool = True

    # Background jobs
    SCHEDULER_ENABLED: bool = True
    REFERRAL_EXPIRY_INTERVAL_MINUTES: int = 60
    COMMISSION_MATURITY_INTERVAL_MINUTES: int = 360

    @field_validator('CORS_ORIGINS', mode='before')
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                return [origin.strip() for origin in v.split(',')]
        return v

    @field_validator('COMMISSION_TIER_RATES', 'TIER_THRESHOLDS', mode='before')
    @classmethod
    def parse_tier_map(cls, v):
        if isinstance(v, str):
            v = json.loads(v)
        if isinstance(v, dict):
            return {str(k).lower(): val for k, val in v.items()}
        return v

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()


@dataclass(frozen=True)
class CommissionConfig:
    """
    Referral program rules handed to the commission services.

    Built once from Settings and passed explicitly into every component that
    needs it, so calculators and processors can be exercised with any
    rule set.
    """
    tier_rates: Dict[str, Decimal] = field(default_factory=lambda: {
        "bronze": Decimal("5"),
        "silver": Decimal("6"),
        "gold": Decimal("7"),
        "platinum": Decimal("8"),
        "diamond": Decimal("10"),
    })
    base_rate: Decimal = Decimal("5")
    tier_thresholds: Dict[str, int] = field(default_factory=lambda: {
        "bronze": 0,
        "silver": 5,
        "gold": 15,
        "platinum": 30,
        "diamond": 50,
    })
    referral_enabled: bool = True
    referral_validity_days: int = 30
    referral_min_order_amount: Decimal = Decimal("0")
    code_prefix: str = "SHRIBALAJI"
    code_max_attempts: int = 10
    maturity_days: int = 7
    min_payout_amount: Decimal = Decimal("500")
    kyc_required: bool = True

    @classmethod
    def from_settings(cls, s: Optional[Settings] = None) -> "CommissionConfig":
        s = s or settings
        return cls(
            tier_rates={k: Decimal(str(v)) for k, v in s.COMMISSION_TIER_RATES.items()},
            base_rate=Decimal(str(s.COMMISSION_BASE_RATE)),
            tier_thresholds=dict(s.TIER_THRESHOLDS),
            referral_enabled=s.REFERRAL_ENABLED,
            referral_validity_days=s.REFERRAL_VALIDITY_DAYS,
            referral_min_order_amount=Decimal(str(s.REFERRAL_MIN_ORDER_AMOUNT)),
            code_prefix=s.REFERRAL_CODE_PREFIX.upper(),
            code_max_attempts=s.REFERRAL_CODE_MAX_ATTEMPTS,
            maturity_days=s.COMMISSION_MATURITY_DAYS,
            min_payout_amount=Decimal(str(s.MIN_PAYOUT_AMOUNT)),
            kyc_required=s.PAYOUT_KYC_REQUIRED,
        )


@lru_cache()
def get_commission_config() -> CommissionConfig:
    """Get cached program rules built from settings."""
    return CommissionConfig.from_settings(settings)
