"""
Authentication router for photographer registration and login.
"""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from gallery_api.database import get_db
from gallery_api.models.user import User
from gallery_api.schemas.user import UserCreate, UserResponse, UserLogin, Token
from gallery_api.services.auth import AuthService
from gallery_api.dependencies.auth import get_current_active_user
from gallery_api.utils.logger import log_info, log_warning

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post(
    "/register",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a photographer account",
)
async def register(
    user_data: UserCreate,
    db: AsyncSession = Depends(get_db),
) -> UserResponse:
    """
    Register a new photographer account.

    - **email**: Valid email address (must be unique)
    - **username**: Username (3-100 characters, must be unique)
    - **password**: Password (8-100 characters)
    """
    try:
        user = await AuthService(db).register(user_data)
    except ValueError as e:
        log_warning("User registration failed", event="auth", error_message=str(e))
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Registration failed",
        )

    log_info("User registration completed", event="auth", user_id=user.id)
    return UserResponse.model_validate(user)


@router.post(
    "/login",
    response_model=Token,
    summary="Login to get access token",
)
async def login(
    login_data: UserLogin,
    db: AsyncSession = Depends(get_db),
) -> Token:
    """
    Login with email and password to get a JWT access token.

    Send it as `Authorization: Bearer <token>` on the photographer endpoints.
    """
    token = await AuthService(db).login(login_data.email, login_data.password)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return token


@router.get(
    "/me",
    response_model=UserResponse,
    summary="Get current user profile",
)
async def get_me(
    current_user: User = Depends(get_current_active_user),
) -> UserResponse:
    return UserResponse.model_validate(current_user)
