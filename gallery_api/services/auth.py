"""
Authentication service for photographer accounts.
"""
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gallery_api.models.user import User
from gallery_api.schemas.user import UserCreate, Token
from gallery_api.utils.security import (
    create_access_token,
    hash_password,
    verify_password,
    verify_share_password,
)
from gallery_api.utils.logger import log_info, log_warning


class AuthService:
    """
    Service for handling photographer authentication.
    Provides methods for registration, login, and user lookup.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def register(self, user_data: UserCreate) -> User:
        """
        Register a new photographer.

        Args:
            user_data: User registration data

        Returns:
            Created User model

        Raises:
            ValueError: If email or username already exists
        """
        if await self._get_user_by_email(user_data.email):
            log_warning("Registration failed", event="auth", reason="email_exists")
            raise ValueError("Email already registered")
        if await self._get_user_by_username(user_data.username):
            log_warning("Registration failed", event="auth", reason="username_exists")
            raise ValueError("Username already taken")

        user = User(
            email=user_data.email,
            username=user_data.username,
            hashed_password=hash_password(user_data.password),
        )

        self.db.add(user)
        await self.db.flush()
        await self.db.refresh(user)
        log_info("Registration", event="auth", user_id=user.id)
        return user

    async def authenticate(self, email: str, password: str) -> Optional[User]:
        """
        Authenticate a photographer with email and password.

        Returns:
            User if authentication successful, None otherwise
        """
        user = await self._get_user_by_email(email)

        if not user:
            # Keep the timing of unknown emails in line with wrong passwords
            verify_share_password(password, None)
            log_warning("Login failed", event="auth", reason="user_not_found")
            return None
        if not user.is_active:
            log_warning("Login failed", event="auth", user_id=user.id, reason="inactive")
            return None
        if not verify_password(password, user.hashed_password):
            log_warning("Login failed", event="auth", user_id=user.id, reason="invalid_password")
            return None
        log_info("Login", event="auth", user_id=user.id)
        return user

    async def login(self, email: str, password: str) -> Optional[Token]:
        """
        Login and return a JWT.

        Returns:
            Token if login successful, None otherwise
        """
        user = await self.authenticate(email, password)
        if not user:
            return None
        return Token(access_token=create_access_token(user.id))

    async def get_user_by_id(self, user_id: int) -> Optional[User]:
        result = await self.db.execute(
            select(User).where(User.id == user_id)
        )
        return result.scalar_one_or_none()

    async def _get_user_by_email(self, email: str) -> Optional[User]:
        result = await self.db.execute(
            select(User).where(User.email == email)
        )
        return result.scalar_one_or_none()

    async def _get_user_by_username(self, username: str) -> Optional[User]:
        result = await self.db.execute(
            select(User).where(User.username == username)
        )
        return result.scalar_one_or_none()
