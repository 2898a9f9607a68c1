"""
Gallery and photo models.
"""
from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import String, DateTime, Integer, ForeignKey, Text, Boolean
from sqlalchemy.orm import Mapped, mapped_column, relationship

from gallery_api.database import Base

if TYPE_CHECKING:
    from gallery_api.models.user import User
    from gallery_api.models.share import ShareLink
    from gallery_api.models.invitation import Invitation


class Gallery(Base):
    """
    Private photo gallery owned by a photographer.

    Carries the gallery-wide access policy: an optional password that
    applies to every share link without one of its own, invite-only mode,
    and a hard expiration date.
    """

    __tablename__ = "galleries"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    owner_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Access policy
    require_password: Mapped[bool] = mapped_column(Boolean, default=False)
    password_hash: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    invite_only: Mapped[bool] = mapped_column(Boolean, default=False)
    expiration_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    is_published: Mapped[bool] = mapped_column(Boolean, default=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    owner: Mapped["User"] = relationship("User", back_populates="galleries")
    photos: Mapped[List["Photo"]] = relationship(
        "Photo",
        back_populates="gallery",
        cascade="all, delete-orphan",
        order_by="Photo.order",
    )
    share_links: Mapped[List["ShareLink"]] = relationship(
        "ShareLink", back_populates="gallery", cascade="all, delete-orphan"
    )
    invitations: Mapped[List["Invitation"]] = relationship(
        "Invitation", back_populates="gallery", cascade="all, delete-orphan"
    )

    @property
    def gallery_password_hash(self) -> Optional[str]:
        """Hash viewers must match, if the gallery-wide password is switched on."""
        if self.require_password and self.password_hash:
            return self.password_hash
        return None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expiration_date is None:
            return False
        return (now or datetime.utcnow()) > self.expiration_date

    def __repr__(self) -> str:
        return f"<Gallery(id={self.id}, title={self.title})>"


class Photo(Base):
    """A photo in a gallery. Files live in external storage; only URLs are kept."""

    __tablename__ = "photos"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    gallery_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("galleries.id", ondelete="CASCADE"), nullable=False, index=True
    )

    title: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    filename: Mapped[str] = mapped_column(String(255), nullable=False)
    url: Mapped[str] = mapped_column(String(1024), nullable=False)
    thumbnail_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)

    # Position within the gallery
    order: Mapped[int] = mapped_column(Integer, default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow
    )

    gallery: Mapped["Gallery"] = relationship("Gallery", back_populates="photos")

    def __repr__(self) -> str:
        return f"<Photo(id={self.id}, gallery_id={self.gallery_id})>"
