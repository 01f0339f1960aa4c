"""Configuration surface for the seat purchase client."""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class SeatsSettings(BaseSettings):
    """Settings for the partner console purchase flow.

    Every value can be overridden with a ``PARTNER_SEATS_`` prefixed
    environment variable, e.g. ``PARTNER_SEATS_API_BASE_URL``.
    """

    model_config = SettingsConfigDict(
        env_prefix="PARTNER_SEATS_",
        env_file=".env",
        extra="ignore",
    )

    # Environment
    environment: Literal["dev", "sandbox", "prod"] = "dev"

    # Backend
    api_base_url: str = "http://localhost:3000/api"
    api_token: str = ""

    # Payment processor (client-side credentials only)
    processor_api_base: str = "https://api.stripe.com/v1"
    processor_publishable_key: str = ""

    # Bounded timeouts per network step, in seconds
    pricing_timeout_seconds: float = Field(default=10.0, gt=0)
    setup_timeout_seconds: float = Field(default=10.0, gt=0)
    processor_timeout_seconds: float = Field(default=30.0, gt=0)
    confirm_timeout_seconds: float = Field(default=30.0, gt=0)

    # Transport retries, applied to idempotent GET requests only
    max_retries: int = Field(default=2, ge=0)

    # Cache lifetimes
    credential_cache_ttl_seconds: int = Field(default=300, ge=0)
    quote_cache_ttl_seconds: int = Field(default=60, ge=0)
    quote_max_age_seconds: int = Field(default=300, gt=0)

    # Seat minimums
    new_batch_min_seats: int = Field(default=10, ge=1)
    extend_min_seats: int = Field(default=1, ge=1)

    @field_validator("api_base_url", "processor_api_base")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @model_validator(mode="after")
    def require_processor_key(self) -> "SeatsSettings":
        if self.environment != "dev" and not self.processor_publishable_key:
            raise ValueError(
                "processor_publishable_key is required outside the dev environment"
            )
        return self


@lru_cache
def load_settings(env_file: Optional[str] = None) -> SeatsSettings:
    """Load SeatsSettings once per process."""
    env_path = Path(env_file) if env_file else None
    return SeatsSettings(_env_file=env_path)
