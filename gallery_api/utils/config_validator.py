"""
Startup configuration checks.

Production refuses to start with default secrets; every environment refuses
share tokens below 128 bits of entropy.
"""
import logging
from typing import List, Tuple

from gallery_api.config import Settings, get_settings
from gallery_api.utils.security import MIN_SHARE_TOKEN_BYTES

logger = logging.getLogger("gallery_api.config")

_DEFAULT_JWT_SECRET = "jwt-secret-change-in-production"


def validate_token_settings(settings: Settings) -> List[str]:
    """Checks that apply in every environment."""
    errors = []
    if settings.share_token_bytes < MIN_SHARE_TOKEN_BYTES:
        errors.append(
            f"SHARE_TOKEN_BYTES must be at least {MIN_SHARE_TOKEN_BYTES} "
            f"(got {settings.share_token_bytes})"
        )
    return errors


def validate_production_settings(settings: Settings) -> List[str]:
    """Checks that only matter once real clients hit the service."""
    errors = []
    if settings.jwt_secret_key == _DEFAULT_JWT_SECRET:
        errors.append("JWT_SECRET_KEY is still the default value")
    if len(settings.jwt_secret_key) < 32:
        errors.append("JWT_SECRET_KEY should be at least 32 characters")
    if settings.database_url.startswith("sqlite"):
        errors.append("DATABASE_URL points at SQLite; use a server database in production")
    return errors


def validate_all_config(settings: Settings = None) -> Tuple[bool, List[str]]:
    """
    Run every applicable check.

    Returns:
        (ok, list of error messages)
    """
    settings = settings or get_settings()
    errors = validate_token_settings(settings)
    if settings.is_production:
        errors.extend(validate_production_settings(settings))

    for error in errors:
        logger.error("Config check failed: %s", error, extra={"event": "lifecycle"})
    return not errors, errors
