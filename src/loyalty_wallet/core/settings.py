from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="allow")

    environment: Literal["development", "staging", "production"] = "development"
    service_name: str = "loyalty-wallet"
    service_version: str = "0.1.0"
    redis_url: str = "redis://localhost:6379/0"

    # Storage keys
    coupons_storage_prefix: str = "coupons_v1"
    previous_tier_storage_prefix: str = "previous_tier_v1"
    favorites_storage_key: str = "coupon_favorites_v1"

    # Coupon catalog
    coupon_catalog_path: str | None = None
    welcome_coupon_id: str = "c1"
    coupon_expiring_soon_days: int = Field(default=3, ge=0)

    @field_validator("coupons_storage_prefix", "previous_tier_storage_prefix", "favorites_storage_key")
    @classmethod
    def _strip_key(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("Storage keys must not be blank")
        return cleaned

    @field_validator("coupon_catalog_path", mode="before")
    @classmethod
    def _blank_path_is_unset(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]


settings = get_settings()
