"""Engine configuration using pydantic-settings."""

from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from ``FORMULA_ENGINE_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="FORMULA_ENGINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Nesting limit for parentheticals, pools and math arguments.
    max_depth: int = 10

    # Default for simplify() when the caller does not say.
    preserve_flavor: bool = True

    log_level: str = "INFO"

    # Seed for the server's random source; unset means secrets.SystemRandom.
    rng_seed: int | None = None


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
