from __future__ import annotations

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_CURRENCY = "USD"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=(".env", "../.env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    database_url: str = Field(..., alias="DATABASE_URL")

    basic_auth_username: str = Field(..., alias="BASIC_AUTH_USERNAME")
    basic_auth_password: str = Field(..., alias="BASIC_AUTH_PASSWORD")

    # Optional second principal that may only review (approve) payouts.
    payout_reviewer_username: str | None = Field(None, alias="PAYOUT_REVIEWER_USERNAME")
    payout_reviewer_password: str | None = Field(None, alias="PAYOUT_REVIEWER_PASSWORD")

    cors_origins: str | None = Field(None, alias="CORS_ORIGINS")

    # --- Commission defaults ---
    default_currency: str = Field(DEFAULT_CURRENCY, alias="DEFAULT_CURRENCY")
    default_partner_commission_bp: int = Field(2000, alias="DEFAULT_PARTNER_COMMISSION_BP", ge=0, le=10_000)
    default_reseller_commission_bp: int = Field(2000, alias="DEFAULT_RESELLER_COMMISSION_BP", ge=0, le=10_000)

    # --- Payouts ---
    minimum_payout_cents: int = Field(0, alias="MINIMUM_PAYOUT_CENTS", ge=0)

    # --- Accrual sweep (safety net for missed invoice-paid hooks) ---
    accrual_sweep_enabled: bool = Field(False, alias="ACCRUAL_SWEEP_ENABLED")
    accrual_sweep_interval_seconds: int = Field(300, alias="ACCRUAL_SWEEP_INTERVAL_SECONDS")
    accrual_sweep_lock_ttl_seconds: int = Field(600, alias="ACCRUAL_SWEEP_LOCK_TTL_SECONDS")
    accrual_sweep_batch_size: int = Field(200, alias="ACCRUAL_SWEEP_BATCH_SIZE")

    @field_validator("default_currency", mode="before")
    @classmethod
    def _normalize_default_currency(cls, v: object) -> object:
        if isinstance(v, str):
            code = v.strip().upper()
            return code or DEFAULT_CURRENCY
        return v

    @field_validator("payout_reviewer_username", "payout_reviewer_password", "cors_origins", mode="before")
    @classmethod
    def _empty_to_none(cls, v: object) -> object:
        if v is None:
            return None
        if isinstance(v, str):
            value = v.strip()
            return value or None
        return v

    @property
    def reviewer_enabled(self) -> bool:
        return bool(self.payout_reviewer_username and self.payout_reviewer_password)


@lru_cache
def get_settings() -> Settings:
    return Settings()
