"""
Application configuration using Pydantic Settings.
Manages all environment variables and settings.
"""
import os
from enum import Enum
from functools import lru_cache

from pydantic_settings import BaseSettings
from pydantic import Field, field_validator, model_validator


class Environment(str, Enum):
    """Application environment modes."""
    DEV = "DEV"
    PRODUCTION = "PRODUCTION"


class PermissionPolicy(str, Enum):
    """How share link and invitation permissions combine on a grant."""
    INTERSECT = "intersect"
    UNION = "union"
    INVITATION_OVERRIDES = "invitation_overrides"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Environment
    environment: Environment = Field(
        default=Environment.DEV,
        description="Application environment: DEV or PRODUCTION"
    )

    # Application
    app_name: str = Field(default="Gallery Access API")
    app_version: str = Field(default="1.0.0")
    debug: bool = Field(default=False)

    @model_validator(mode='after')
    def set_debug_from_environment(self):
        """Set debug mode based on environment if not explicitly set via environment variable."""
        if 'DEBUG' not in os.environ:
            self.debug = self.environment == Environment.DEV
        return self

    @property
    def is_dev(self) -> bool:
        """Check if running in development mode."""
        return self.environment == Environment.DEV

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == Environment.PRODUCTION

    # Database (empty string falls back to the local SQLite file)
    database_url: str = Field(default="sqlite+aiosqlite:///./gallery_api.db")
    db_pool_size: int = Field(default=10)
    db_max_overflow: int = Field(default=20)
    db_pool_timeout: int = Field(default=10)
    db_pool_recycle: int = Field(default=1800)

    @field_validator("database_url", mode="before")
    @classmethod
    def coerce_empty_database_url(cls, v: str) -> str:
        if not v or not str(v).strip():
            return "sqlite+aiosqlite:///./gallery_api.db"
        return v

    # JWT (photographer login and share access capabilities)
    jwt_secret_key: str = Field(default="jwt-secret-change-in-production")
    jwt_algorithm: str = Field(default="HS256")
    access_token_expire_minutes: int = Field(default=30)
    share_access_token_expire_seconds: int = Field(
        default=900,
        description="Lifetime of the capability returned by verify-password",
    )

    # Password hashing
    password_hash_rounds: int = Field(default=12, ge=4, le=31)

    # Token generation
    share_token_bytes: int = Field(
        default=32,
        description="Random bytes per share token (16 bytes = 128 bits minimum)",
    )
    invite_code_length: int = Field(default=12, ge=8, le=32)
    token_max_attempts: int = Field(
        default=3,
        ge=1,
        description="Insert attempts before a token collision is treated as fatal",
    )

    # Access policy
    default_invitation_expiry_days: int = Field(
        default=30,
        ge=0,
        description="Applied when an invitation is created without expiresAt. 0 disables.",
    )
    permission_policy: PermissionPolicy = Field(default=PermissionPolicy.INTERSECT)

    # Storage behaviour during access resolution
    storage_timeout_seconds: float = Field(default=5.0, gt=0)
    storage_retry_attempts: int = Field(default=3, ge=1)

    # Rate limiting (slowapi)
    rate_limit_enabled: bool = Field(default=True)
    rate_limit_per_minute: int = Field(default=120)
    rate_limit_share_per_minute: int = Field(default=30)

    # Public URLs
    frontend_url: str = Field(default="http://localhost:3000")

    # Logging
    log_dir: str = Field(
        default="/var/log/gallery-api",
        description="Directory for NDJSON log files. Empty disables file logging.",
    )
    instance_ip: str = Field(default="", description="Private IP for log labels (auto-detected when empty)")
    node_name: str = Field(default="", description="Node/Pod identifier for Prometheus labels")

    class Config:
        # Environment variables only (systemd EnvironmentFile, container env)
        env_file = None
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Using lru_cache to avoid re-reading the environment on every request.
    """
    return Settings()
