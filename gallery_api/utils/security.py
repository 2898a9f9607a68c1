"""
Security helpers: password hashing and verification, JWTs, and the random
values handed out as share tokens and invitation codes.
"""
import hashlib
import hmac
import secrets
from datetime import datetime, timedelta
from functools import lru_cache
from typing import Optional, Tuple

from jose import JWTError, jwt
from passlib.context import CryptContext

from gallery_api.config import get_settings
from gallery_api.exceptions import ConfigurationError
from gallery_api.schemas.user import TokenPayload

settings = get_settings()

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.password_hash_rounds,
)

# 16 bytes = 128 bits, the floor for share tokens
MIN_SHARE_TOKEN_BYTES = 16

# No 0/O, 1/I: codes get read aloud and typed by hand
INVITE_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"

SHARE_ACCESS_SCOPE = "share"


def hash_password(password: str) -> str:
    """
    Hash a password using bcrypt.

    Args:
        password: Plain text password

    Returns:
        Hashed password string
    """
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verify a password against a hash.

    Comparison is done by passlib in constant time. A malformed or unknown
    hash counts as a mismatch.
    """
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except (ValueError, TypeError):
        return False


@lru_cache()
def _dummy_password_hash() -> str:
    return pwd_context.hash(secrets.token_urlsafe(16))


def verify_share_password(plain_password: Optional[str], password_hash: Optional[str]) -> bool:
    """
    Check a viewer-supplied password for a protected share link or gallery.

    Always performs exactly one bcrypt verification, against a throwaway
    hash when there is nothing to compare with, so a missing password, a
    wrong password and an unknown link take the same time. Read-only.
    """
    if password_hash is None:
        verify_password(plain_password or "", _dummy_password_hash())
        return False
    if not plain_password:
        verify_password("", _dummy_password_hash())
        return False
    return verify_password(plain_password, password_hash)


def create_access_token(
    user_id: int,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Create a JWT access token for a photographer.

    Args:
        user_id: User ID to encode in the token
        expires_delta: Optional expiration time delta

    Returns:
        Encoded JWT token string
    """
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.access_token_expire_minutes)

    to_encode = {
        "sub": str(user_id),
        "exp": datetime.utcnow() + expires_delta,
    }
    return jwt.encode(
        to_encode,
        settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
    )


def decode_access_token(token: str) -> Optional[TokenPayload]:
    """
    Decode and validate a photographer JWT.

    Returns:
        TokenPayload if valid, None if invalid, expired, or scoped to
        something else (share capabilities are not login tokens)
    """
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError:
        return None

    if payload.get("scope") is not None:
        return None
    user_id = payload.get("sub")
    exp = payload.get("exp")
    if user_id is None or exp is None:
        return None
    try:
        return TokenPayload(sub=int(user_id), exp=datetime.utcfromtimestamp(exp))
    except (TypeError, ValueError):
        return None


def _password_fingerprint(password_hash: Optional[str]) -> str:
    return hashlib.sha256((password_hash or "").encode("utf-8")).hexdigest()[:16]


def create_share_access_token(
    share_link_id: int,
    password_hash: Optional[str],
) -> Tuple[str, int]:
    """
    Issue a short-lived capability proving the share link's password was
    verified. Presented on later requests instead of the raw password.

    The capability carries a fingerprint of the password hash it was
    issued against, so changing or clearing that password revokes it.

    Returns:
        (token, lifetime in seconds)
    """
    lifetime = settings.share_access_token_expire_seconds
    to_encode = {
        "sub": str(share_link_id),
        "exp": datetime.utcnow() + timedelta(seconds=lifetime),
        "scope": SHARE_ACCESS_SCOPE,
        "pwd": _password_fingerprint(password_hash),
    }
    token = jwt.encode(
        to_encode,
        settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
    )
    return token, lifetime


def verify_share_access_token(
    token: Optional[str],
    share_link_id: int,
    password_hash: Optional[str],
) -> bool:
    """
    True if ``token`` is an unexpired capability for this share link,
    issued against the password hash currently in force.
    """
    if not token:
        return False
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError:
        return False
    if payload.get("scope") != SHARE_ACCESS_SCOPE:
        return False
    if payload.get("sub") != str(share_link_id):
        return False
    return hmac.compare_digest(
        str(payload.get("pwd", "")),
        _password_fingerprint(password_hash),
    )


def generate_share_token(byte_length: Optional[int] = None) -> str:
    """
    Generate a URL-safe share token.

    Args:
        byte_length: Random bytes to draw (defaults to SHARE_TOKEN_BYTES)

    Raises:
        ConfigurationError: below 128 bits of entropy
    """
    if byte_length is None:
        byte_length = settings.share_token_bytes
    if byte_length < MIN_SHARE_TOKEN_BYTES:
        raise ConfigurationError(
            f"Share tokens need at least {MIN_SHARE_TOKEN_BYTES} random bytes, got {byte_length}"
        )
    return secrets.token_urlsafe(byte_length)


def generate_invite_code(length: Optional[int] = None) -> str:
    """Generate a human-typeable invitation code (5 bits per character)."""
    if length is None:
        length = settings.invite_code_length
    return "".join(secrets.choice(INVITE_CODE_ALPHABET) for _ in range(length))


def normalize_invite_code(code: str) -> str:
    """Canonical form used for storage and lookup."""
    return code.strip().upper()
