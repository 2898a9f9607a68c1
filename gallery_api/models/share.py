"""
Share link model for direct gallery access.
"""
from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import String, DateTime, Integer, ForeignKey, Boolean, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from gallery_api.database import Base

if TYPE_CHECKING:
    from gallery_api.models.gallery import Gallery


class ShareLink(Base):
    """
    Direct access token for a gallery.

    Optional password, expiry and view ceiling. There is no status column:
    whether a link is usable is decided at resolution time from
    ``expires_at`` and ``view_count`` against ``max_views``.
    ``view_count`` is only ever written by the usage ledger.
    """

    __tablename__ = "share_links"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    gallery_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("galleries.id", ondelete="CASCADE"), nullable=False, index=True
    )

    token: Mapped[str] = mapped_column(
        String(128), unique=True, index=True, nullable=False
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Permissions
    can_view: Mapped[bool] = mapped_column(Boolean, default=True)
    can_download: Mapped[bool] = mapped_column(Boolean, default=False)
    can_comment: Mapped[bool] = mapped_column(Boolean, default=False)

    # Access control
    password_hash: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    max_views: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Statistics
    view_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_accessed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow
    )

    gallery: Mapped["Gallery"] = relationship("Gallery", back_populates="share_links")

    @property
    def has_password(self) -> bool:
        return self.password_hash is not None

    def __repr__(self) -> str:
        return f"<ShareLink(id={self.id}, token={self.token[:8]}...)>"
