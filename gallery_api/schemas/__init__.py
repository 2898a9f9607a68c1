"""
Pydantic schemas package.
All schemas are exported here for easy import.
"""
from gallery_api.schemas.user import (
    UserCreate,
    UserResponse,
    UserLogin,
    Token,
    TokenPayload,
)
from gallery_api.schemas.gallery import (
    GalleryCreate,
    GalleryUpdate,
    GalleryResponse,
    PhotoCreate,
    PhotoAdd,
    PhotoResponse,
)
from gallery_api.schemas.share import (
    ShareLinkPermissions,
    ShareLinkCreate,
    ShareLinkResponse,
    VerifyPasswordRequest,
    VerifyPasswordResponse,
    EffectivePermissions,
    SharedGalleryResponse,
)
from gallery_api.schemas.invitation import (
    InvitationPermissions,
    InvitationCreate,
    InvitationSend,
    InvitationResponse,
    InvitationSendResponse,
)
from gallery_api.schemas.analytics import InviteAnalyticsResponse

__all__ = [
    # User schemas
    "UserCreate",
    "UserResponse",
    "UserLogin",
    "Token",
    "TokenPayload",
    # Gallery schemas
    "GalleryCreate",
    "GalleryUpdate",
    "GalleryResponse",
    "PhotoCreate",
    "PhotoAdd",
    "PhotoResponse",
    # Share schemas
    "ShareLinkPermissions",
    "ShareLinkCreate",
    "ShareLinkResponse",
    "VerifyPasswordRequest",
    "VerifyPasswordResponse",
    "EffectivePermissions",
    "SharedGalleryResponse",
    # Invitation schemas
    "InvitationPermissions",
    "InvitationCreate",
    "InvitationSend",
    "InvitationResponse",
    "InvitationSendResponse",
    # Analytics
    "InviteAnalyticsResponse",
]
