"""
Invitation model: gallery access codes with a permission set and lifecycle.
"""
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import String, DateTime, Integer, ForeignKey, Boolean, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from gallery_api.database import Base

if TYPE_CHECKING:
    from gallery_api.models.gallery import Gallery


class InvitationType(str, Enum):
    SINGLE_USE = "single_use"
    MULTI_USE = "multi_use"
    TIME_LIMITED = "time_limited"


class InvitationStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    EXPIRED = "expired"
    REVOKED = "revoked"


# Statuses an invitation can never leave
TERMINAL_STATUSES = frozenset({InvitationStatus.EXPIRED.value, InvitationStatus.REVOKED.value})
LIVE_STATUSES = (InvitationStatus.PENDING.value, InvitationStatus.ACTIVE.value)


class Invitation(Base):
    """
    Invitation code for a gallery.

    ``usage_count`` is written only by the usage ledger; ``status`` only by
    the lifecycle manager (and the ledger's consume statement, which moves
    an exhausted invitation to ``expired``).
    """

    __tablename__ = "invitations"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    gallery_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("galleries.id", ondelete="CASCADE"), nullable=False, index=True
    )

    code: Mapped[str] = mapped_column(
        String(32), unique=True, index=True, nullable=False
    )
    type: Mapped[str] = mapped_column(
        String(20), nullable=False, default=InvitationType.SINGLE_USE.value
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=InvitationStatus.ACTIVE.value, index=True
    )

    client_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    client_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Permissions
    can_view: Mapped[bool] = mapped_column(Boolean, default=True)
    can_favorite: Mapped[bool] = mapped_column(Boolean, default=True)
    can_comment: Mapped[bool] = mapped_column(Boolean, default=False)
    can_download: Mapped[bool] = mapped_column(Boolean, default=False)
    can_request_purchase: Mapped[bool] = mapped_column(Boolean, default=True)

    # Limits
    max_usage: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    usage_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, index=True
    )
    used_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    gallery: Mapped["Gallery"] = relationship("Gallery", back_populates="invitations")

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def __repr__(self) -> str:
        return f"<Invitation(id={self.id}, status={self.status})>"
