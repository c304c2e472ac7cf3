"""
lazycache Configuration

Configuration management with environment variable support.
Every default mirrors the behaviour of the memoizer when no environment
is provided, so the library works without any configuration at all.
"""

from functools import lru_cache

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..constants import DEFAULT_TTL_SECONDS

# Load environment variables from .env file
load_dotenv()

_BACKEND_NAMES = ("local", "registry", "cache", "session")
_ERROR_POLICIES = ("log", "raise")


class Settings(BaseSettings):
    """Library settings with validation and safe defaults."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=True, extra="ignore"
    )

    # Environment settings
    ENVIRONMENT: str = Field(
        default="development", description="Runtime environment"
    )

    # Memoization defaults
    LAZYCACHE_DEFAULT_TTL: int = Field(
        default=DEFAULT_TTL_SECONDS,
        gt=0,
        description="Default TTL hint in seconds for shared cache entries",
    )
    LAZYCACHE_DEFAULT_BACKEND: str = Field(
        default="registry", description="Backend used when memoize() gets none"
    )
    LAZYCACHE_CLEAR_DEFAULT_BACKEND: str = Field(
        default="local", description="Backend used when clear() gets none"
    )
    LAZYCACHE_ERROR_POLICY: str = Field(
        default="log",
        description="Backend failure policy: 'log' degrades to the producer, 'raise' propagates",
    )
    LAZYCACHE_REENTRANCY_GUARD: bool = Field(
        default=True,
        description="Fail fast when a producer re-enters memoize() for its own key",
    )

    # Redis configuration
    REDIS_URL: str = Field(
        default="redis://localhost:6379/0", description="Redis connection URL"
    )
    REDIS_SOCKET_TIMEOUT: float = Field(
        default=5.0, gt=0, le=60, description="Redis socket timeout in seconds"
    )
    REDIS_TAG_PREFIX: str = Field(
        default="lc:tag:", min_length=1, description="Key prefix for tag version keys"
    )

    # Logging configuration
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_JSON: bool = Field(default=True, description="Render log events as JSON")

    @field_validator("LAZYCACHE_DEFAULT_BACKEND", "LAZYCACHE_CLEAR_DEFAULT_BACKEND")
    @classmethod
    def validate_backend(cls, v: str) -> str:
        """Validate backend name."""
        value = v.strip().lower()
        if value not in _BACKEND_NAMES:
            raise ValueError(
                f"Unknown backend '{v}', expected one of: {', '.join(_BACKEND_NAMES)}"
            )
        return value

    @field_validator("LAZYCACHE_ERROR_POLICY")
    @classmethod
    def validate_error_policy(cls, v: str) -> str:
        """Validate backend error policy."""
        value = v.strip().lower()
        if value not in _ERROR_POLICIES:
            raise ValueError(
                f"Unknown error policy '{v}', expected one of: {', '.join(_ERROR_POLICIES)}"
            )
        return value

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v.upper()

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.ENVIRONMENT.lower() == "production"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
