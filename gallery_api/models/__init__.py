"""
Database models package.
All models are exported here for easy import.
"""
from gallery_api.models.user import User
from gallery_api.models.gallery import Gallery, Photo
from gallery_api.models.share import ShareLink
from gallery_api.models.invitation import Invitation, InvitationStatus, InvitationType
from gallery_api.models.access_grant import AccessGrantRecord

__all__ = [
    "User",
    "Gallery",
    "Photo",
    "ShareLink",
    "Invitation",
    "InvitationStatus",
    "InvitationType",
    "AccessGrantRecord",
]
