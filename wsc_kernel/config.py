"""
Kernel settings loaded from environment variables (prefix ``WSC_``).
"""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Process-level settings. Per-world knobs live in WorldState.settings."""

    model_config = SettingsConfigDict(
        env_prefix="WSC_",
        env_file=".env",
        extra="ignore",
        case_sensitive=False,
    )

    # Storage
    world_id: Optional[str] = None          # world served by the API app
    worlds_dir: str = "worlds"
    scenarios_dir: str = "scenarios"

    # Chronicle
    default_query_limit: int = 20
    default_scale: str = "galactic"
    embed_locations: bool = True

    # Logging
    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
