"""
Share link related Pydantic schemas for request/response validation.
"""
from datetime import datetime
from typing import Optional, List

from pydantic import Field, field_validator

from gallery_api.schemas.base import CamelModel, to_naive_utc
from gallery_api.schemas.gallery import PhotoResponse


class ShareLinkPermissions(CamelModel):
    """What a share link lets its holder do."""

    can_view: bool = True
    can_download: bool = False
    can_comment: bool = False


class ShareLinkCreate(CamelModel):
    """Schema for creating a share link."""

    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=300)
    permissions: ShareLinkPermissions = Field(default_factory=ShareLinkPermissions)
    password: Optional[str] = Field(None, min_length=4, max_length=50)
    expires_at: Optional[datetime] = None
    expires_in_days: Optional[int] = Field(
        None,
        ge=1,
        le=365,
        description="Days until the link expires (ignored when expiresAt is given)",
    )
    max_views: Optional[int] = Field(None, ge=1)

    @field_validator("expires_at")
    @classmethod
    def normalize_expires_at(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(v)


class ShareLinkUpdate(CamelModel):
    """
    Schema for updating a share link.

    ``password`` replaces the link password; ``clear_password`` removes it.
    Counters are not writable here.
    """

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=300)
    permissions: Optional[ShareLinkPermissions] = None
    password: Optional[str] = Field(None, min_length=4, max_length=50)
    clear_password: bool = False
    expires_at: Optional[datetime] = None
    clear_expiration: bool = False
    max_views: Optional[int] = Field(None, ge=1)
    clear_max_views: bool = False

    @field_validator("expires_at")
    @classmethod
    def normalize_expires_at(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(v)


class ShareLinkResponse(CamelModel):
    """Schema for share link response (owner view)."""

    id: int
    gallery_id: int
    token: str
    name: str
    description: Optional[str] = None
    permissions: ShareLinkPermissions
    has_password: bool
    expires_at: Optional[datetime] = None
    max_views: Optional[int] = None
    view_count: int
    is_active: bool
    last_accessed_at: Optional[datetime] = None
    created_at: datetime
    share_url: str


class VerifyPasswordRequest(CamelModel):
    password: str = Field(..., min_length=1, max_length=200)


class VerifyPasswordResponse(CamelModel):
    """
    Outcome of a password check. On success carries a short-lived access
    token to present instead of the password on the next requests.
    """

    verified: bool
    access_token: Optional[str] = None
    expires_in: Optional[int] = None


class EffectivePermissions(CamelModel):
    """Permission set granted to a viewer after combining all applicable grants."""

    can_view: bool
    can_download: bool
    can_comment: bool
    can_favorite: bool
    can_request_purchase: bool


class SharedGalleryInfo(CamelModel):
    id: int
    title: str
    description: Optional[str] = None
    created_at: datetime


class SharedLinkInfo(CamelModel):
    name: str
    description: Optional[str] = None
    expires_at: Optional[datetime] = None
    views_remaining: Optional[int] = None


class SharedInvitationInfo(CamelModel):
    id: int
    type: str
    status: str
    usage_count: int
    max_usage: Optional[int] = None
    expires_at: Optional[datetime] = None


class SharedGalleryResponse(CamelModel):
    """
    Gallery as shown to a viewer holding a share link (public access).
    """

    gallery: SharedGalleryInfo
    photos: List[PhotoResponse] = []
    photo_count: int
    permissions: EffectivePermissions
    share_link: SharedLinkInfo
    invitation: Optional[SharedInvitationInfo] = None
    granted_at: datetime


class ShareLinkAccessEntry(CamelModel):
    granted_at: datetime
    client_ip: Optional[str] = None
    invitation_id: Optional[int] = None


class ShareLinkStats(CamelModel):
    """Usage statistics of a share link (owner view). Reading them counts no view."""

    share_link_id: int
    total_views: int
    max_views: Optional[int] = None
    views_remaining: Optional[int] = None
    is_active: bool
    is_expired: bool
    expires_at: Optional[datetime] = None
    last_accessed: Optional[datetime] = None
    recent_access: List[ShareLinkAccessEntry] = []
