"""Application configuration using pydantic-settings."""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="APKG_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Archive limits
    max_archive_bytes: int = Field(
        default=100 * 1024 * 1024,
        description="Largest upload accepted by the HTTP surface",
    )
    max_entry_bytes: int = Field(
        default=512 * 1024 * 1024,
        description="Largest declared uncompressed size of a single archive entry",
    )

    # Import behaviour
    preview_limit: int = Field(
        default=10,
        description="Number of card previews rendered per import",
    )
    media_sample_size: int = Field(
        default=3,
        description="Number of offending media file names quoted in errors",
    )

    # API configuration
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=8000, description="API port")
    debug: bool = Field(default=False, description="Debug mode")
    json_logs: bool = Field(default=False, description="Render logs as JSON")

    @field_validator("max_archive_bytes", "max_entry_bytes", "media_sample_size")
    @classmethod
    def validate_positive_int(cls, v: int) -> int:
        """Validate integer settings that must be positive."""
        if v <= 0:
            raise ValueError("value must be positive")
        return v

    @field_validator("preview_limit")
    @classmethod
    def validate_preview_limit(cls, v: int) -> int:
        """Preview limit may be zero (no previews) but not negative."""
        if v < 0:
            raise ValueError("preview_limit must not be negative")
        return v

    @field_validator("api_port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Validate TCP port range."""
        if not 0 < v < 65536:
            raise ValueError("api_port must be between 1 and 65535")
        return v


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
