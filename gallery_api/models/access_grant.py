"""
Audit trail of granted gallery accesses.
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import String, DateTime, Integer, JSON
from sqlalchemy.orm import Mapped, mapped_column

from gallery_api.database import Base


class AccessGrantRecord(Base):
    """
    One row per successful authorization.

    Deliberately free of foreign keys so the trail survives deletion of the
    share link or invitation it refers to.
    """

    __tablename__ = "access_grants"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    gallery_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    share_link_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    invitation_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    permissions: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    client_ip: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    granted_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, index=True
    )

    def __repr__(self) -> str:
        return f"<AccessGrantRecord(id={self.id}, gallery_id={self.gallery_id})>"
