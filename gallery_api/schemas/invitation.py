"""
Invitation related Pydantic schemas for request/response validation.
"""
from datetime import datetime
from typing import Optional

from pydantic import EmailStr, Field, field_validator

from gallery_api.models.invitation import InvitationStatus, InvitationType
from gallery_api.schemas.base import CamelModel, to_naive_utc


class InvitationPermissions(CamelModel):
    """What an invitation lets its holder do."""

    can_view: bool = True
    can_favorite: bool = True
    can_comment: bool = False
    can_download: bool = False
    can_request_purchase: bool = True


class InvitationCreate(CamelModel):
    """
    Schema for creating an invitation.

    ``type`` is inferred when omitted: ``max_usage == 1`` is single use, an
    expiry without a usage cap is time limited, anything else multi use.
    """

    gallery_id: int
    type: Optional[InvitationType] = None
    client_email: Optional[EmailStr] = None
    client_name: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    expires_at: Optional[datetime] = None
    max_usage: Optional[int] = Field(None, ge=1)
    permissions: InvitationPermissions = Field(default_factory=InvitationPermissions)

    @field_validator("expires_at")
    @classmethod
    def normalize_expires_at(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(v)


class InvitationSend(CamelModel):
    """Schema for creating an invitation bound to a recipient and emailing it."""

    gallery_id: int
    recipient_email: EmailStr
    recipient_name: Optional[str] = Field(None, max_length=100)
    type: Optional[InvitationType] = None
    description: Optional[str] = Field(None, max_length=500)
    expires_at: Optional[datetime] = None
    max_usage: Optional[int] = Field(None, ge=1)
    permissions: InvitationPermissions = Field(default_factory=InvitationPermissions)

    @field_validator("expires_at")
    @classmethod
    def normalize_expires_at(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(v)

    def as_create(self) -> InvitationCreate:
        return InvitationCreate(
            gallery_id=self.gallery_id,
            type=self.type,
            client_email=self.recipient_email,
            client_name=self.recipient_name,
            description=self.description,
            expires_at=self.expires_at,
            max_usage=self.max_usage,
            permissions=self.permissions,
        )


class InvitationUpdate(CamelModel):
    """
    Schema for updating an invitation.

    Only live invitations can be updated. Status and usage count are not
    writable here; use the revoke endpoint to end an invitation.
    """

    client_name: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    permissions: Optional[InvitationPermissions] = None
    expires_at: Optional[datetime] = None
    clear_expiration: bool = False
    max_usage: Optional[int] = Field(None, ge=1)

    @field_validator("expires_at")
    @classmethod
    def normalize_expires_at(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(v)


class InvitationResponse(CamelModel):
    """Schema for invitation response (owner view). ``status`` is the effective status."""

    id: int
    gallery_id: int
    code: str
    invite_url: str
    type: InvitationType
    status: InvitationStatus
    client_email: Optional[str] = None
    client_name: Optional[str] = None
    description: Optional[str] = None
    permissions: InvitationPermissions
    max_usage: Optional[int] = None
    usage_count: int
    expires_at: Optional[datetime] = None
    created_at: datetime
    used_at: Optional[datetime] = None


class InvitationSendResponse(CamelModel):
    invitation: InvitationResponse
    email_queued: bool


class InvitationGalleryInfo(CamelModel):
    id: int
    title: str
    description: Optional[str] = None


class InvitationValidation(CamelModel):
    """
    Public pre-check of an invitation code. Checking a code never uses it.

    ``valid`` is true when the code would open its gallery right now.
    """

    code: str
    valid: bool
    type: InvitationType
    status: InvitationStatus
    gallery: InvitationGalleryInfo
    client_name: Optional[str] = None
    description: Optional[str] = None
    permissions: InvitationPermissions
    expires_at: Optional[datetime] = None
    uses_remaining: Optional[int] = None
