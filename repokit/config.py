"""
Configuration management for the repository layer.

Loads and validates environment variables that select the backend
implementation and tune logging, caching and batching behavior.
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Repository layer settings.

    All settings can be overridden via environment variables.
    """

    # Supabase Configuration
    SUPABASE_URL: str = Field(default="")
    SUPABASE_SERVICE_KEY: str = Field(default="")
    SUPABASE_ANON_KEY: str = Field(default="")
    SUPABASE_SCHEMA: str = Field(default="public")

    # Backend selection ("memory" swaps in the in-memory test double)
    REPOSITORY_BACKEND: Literal["supabase", "memory"] = Field(default="supabase")

    # Logging
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO"
    )
    LOG_JSON: bool = Field(default=True)
    REPOSITORY_LOGGING: bool = Field(default=False)
    SLOW_QUERY_THRESHOLD_MS: float = Field(default=500.0, ge=0)

    # Caching
    CACHE_TTL_SECONDS: int = Field(default=300, ge=0)
    CACHE_MAX_SIZE: int = Field(default=1000, ge=1)

    # Batch operations
    BATCH_CHUNK_SIZE: int = Field(default=100, ge=1)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    @property
    def use_memory_backend(self) -> bool:
        """Check if the in-memory backend is selected."""
        return self.REPOSITORY_BACKEND == "memory"

    @property
    def supabase_configured(self) -> bool:
        """Check if Supabase credentials are present."""
        return bool(self.SUPABASE_URL and self.SUPABASE_SERVICE_KEY)


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get the global settings instance."""
    return settings
