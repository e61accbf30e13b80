from decimal import Decimal
from functools import lru_cache
import json
from typing import Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_PACKAGE_TIERS: list[dict[str, Any]] = [
    {"package_id": "8_pack", "name": "8-Pack", "credits": 8, "price": "280.00", "keywords": ["8 pack", "8-pack"]},
    {"package_id": "4_pack", "name": "4-Pack", "credits": 4, "price": "150.00", "keywords": ["4 pack", "4-pack"]},
    {"package_id": "single", "name": "Single", "credits": 1, "price": "45.00", "keywords": ["single", "1 pack"]},
]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="allow")

    environment: Literal["development", "staging", "production"] = "development"
    database_url: str = "sqlite+aiosqlite:///./credit_ledger.db"
    db_auto_create: bool = False
    tracing_enabled: bool = False
    log_level: str = "INFO"

    # Stripe configuration
    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""
    stripe_timeout_seconds: float = 5.0
    stripe_search_limit: int = 100

    # Cal.com configuration
    cal_api_key: str = ""
    cal_api_base_url: str = "https://api.cal.com"
    cal_api_version: str = "2024-08-13"
    cal_timeout_seconds: float = 5.0

    # Admin API security
    admin_api_key: str = ""

    # Package pricing
    package_tiers: list[dict[str, Any]] = Field(default_factory=lambda: [dict(tier) for tier in DEFAULT_PACKAGE_TIERS])
    package_amount_tolerance: Decimal = Decimal("1.00")
    default_package_id: str = "single"

    # Booking snapshots
    booking_snapshot_persist_enabled: bool = False
    booking_snapshot_statuses: list[str] = Field(
        default_factory=lambda: ["completed", "confirmed", "accepted"]
    )

    @field_validator("package_tiers", mode="before")
    @classmethod
    def _parse_package_tiers(cls, value: object) -> list[dict[str, Any]]:
        if value is None or value == "":
            return [dict(tier) for tier in DEFAULT_PACKAGE_TIERS]
        if isinstance(value, str):
            value = json.loads(value)
        if isinstance(value, (list, tuple)):
            return [dict(item) for item in value if isinstance(item, dict)]
        raise ValueError("package_tiers must be a JSON list of tier objects")

    @field_validator("booking_snapshot_statuses", mode="before")
    @classmethod
    def _parse_status_list(cls, value: object) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [item.strip().lower() for item in value.split(",") if item.strip()]
        if isinstance(value, (list, tuple, set)):
            return [str(item).strip().lower() for item in value if str(item).strip()]
        return []


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]


settings = get_settings()
