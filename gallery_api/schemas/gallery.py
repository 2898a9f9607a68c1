"""
Gallery-related Pydantic schemas for request/response validation.
"""
from datetime import datetime
from typing import Optional, List

from pydantic import Field, field_validator

from gallery_api.schemas.base import CamelModel, to_naive_utc


class GalleryBase(CamelModel):
    """Base schema with common gallery attributes."""

    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None


class GalleryCreate(GalleryBase):
    """Schema for gallery creation."""

    require_password: bool = False
    password: Optional[str] = Field(None, min_length=4, max_length=50)
    invite_only: bool = False
    expiration_date: Optional[datetime] = None
    is_published: bool = False

    @field_validator("expiration_date")
    @classmethod
    def normalize_expiration(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(v)


class GalleryUpdate(CamelModel):
    """
    Schema for updating a gallery.

    ``password`` replaces the gallery password; ``clear_password`` removes it.
    """

    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    require_password: Optional[bool] = None
    password: Optional[str] = Field(None, min_length=4, max_length=50)
    clear_password: bool = False
    invite_only: Optional[bool] = None
    expiration_date: Optional[datetime] = None
    clear_expiration: bool = False
    is_published: Optional[bool] = None

    @field_validator("expiration_date")
    @classmethod
    def normalize_expiration(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(v)


class GalleryResponse(GalleryBase):
    """Schema for gallery response (owner view)."""

    id: int
    owner_id: int
    require_password: bool
    has_password: bool
    invite_only: bool
    expiration_date: Optional[datetime] = None
    is_published: bool
    photo_count: int = 0
    created_at: datetime
    updated_at: datetime


class PhotoCreate(CamelModel):
    """A photo registered by URL; the file itself lives in external storage."""

    filename: str = Field(..., min_length=1, max_length=255)
    url: str = Field(..., min_length=1, max_length=1024)
    thumbnail_url: Optional[str] = Field(None, max_length=1024)
    title: Optional[str] = Field(None, max_length=255)


class PhotoAdd(CamelModel):
    """Schema for adding photos to a gallery."""

    photos: List[PhotoCreate] = Field(..., min_length=1)


class PhotoResponse(CamelModel):
    id: int
    title: Optional[str] = None
    filename: str
    url: str
    thumbnail_url: Optional[str] = None
    order: int
    created_at: datetime
