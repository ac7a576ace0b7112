"""
Application settings using Pydantic.

Provides environment-based configuration loading with TOPOPLAN_ prefix.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="TOPOPLAN_",
    )

    # Target account
    account_id: str = "000000000000"
    region: str = "us-east-1"
    partition: str = "aws"

    # Network defaults (overridable per topology)
    vpc_cidr: str = "10.0.0.0/16"
    max_zones: int = 3

    # Control plane retries
    max_attempts: int = 5
    backoff_multiplier: float = 1.0
    backoff_max: float = 30.0
    describe_poll_attempts: int = 30

    # Execution
    max_parallel: int = 4


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
