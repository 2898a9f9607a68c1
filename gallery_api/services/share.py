"""
Share link service: owner-side link management and statistics, password
verification and the viewer-facing gallery payload.
"""
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from gallery_api.config import get_settings
from gallery_api.models.access_grant import AccessGrantRecord
from gallery_api.models.gallery import Gallery
from gallery_api.models.share import ShareLink
from gallery_api.schemas.gallery import PhotoResponse
from gallery_api.schemas.share import (
    EffectivePermissions,
    ShareLinkAccessEntry,
    ShareLinkCreate,
    ShareLinkPermissions,
    ShareLinkResponse,
    ShareLinkStats,
    ShareLinkUpdate,
    SharedGalleryInfo,
    SharedGalleryResponse,
    SharedInvitationInfo,
    SharedLinkInfo,
    VerifyPasswordResponse,
)
from gallery_api.services.lifecycle import (
    ShareLinkState,
    is_share_link_active,
    share_link_state,
    views_remaining,
)
from gallery_api.services.resolver import AccessGrant
from gallery_api.services.tokens import add_with_unique_token
from gallery_api.utils.logger import log_info, log_warning
from gallery_api.utils.prometheus_metrics import (
    share_link_creation_total,
    share_password_verifications_total,
)
from gallery_api.utils.security import (
    create_share_access_token,
    generate_share_token,
    hash_password,
    verify_share_password,
)

settings = get_settings()


class ShareLinkService:
    """
    Service for share link management.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_share_link(self, gallery: Gallery, data: ShareLinkCreate) -> ShareLink:
        """
        Create a share link for a gallery.

        Args:
            gallery: Gallery to share
            data: Share link creation data

        Returns:
            Created ShareLink model
        """
        expires_at = data.expires_at
        if expires_at is None and data.expires_in_days:
            expires_at = datetime.utcnow() + timedelta(days=data.expires_in_days)
        password_hash = hash_password(data.password) if data.password else None

        def build(token: str) -> ShareLink:
            return ShareLink(
                gallery_id=gallery.id,
                token=token,
                name=data.name,
                description=data.description,
                can_view=data.permissions.can_view,
                can_download=data.permissions.can_download,
                can_comment=data.permissions.can_comment,
                password_hash=password_hash,
                expires_at=expires_at,
                max_views=data.max_views,
                view_count=0,
            )

        try:
            share_link = await add_with_unique_token(
                self.db, ShareLink.token, generate_share_token, build
            )
        except Exception:
            share_link_creation_total.labels(result="failure").inc()
            raise

        await self.db.refresh(share_link)
        share_link_creation_total.labels(result="success").inc()
        log_info(
            "Share link created",
            event="share",
            share_link_id=share_link.id,
            gallery_id=gallery.id,
            has_password=password_hash is not None,
            max_views=data.max_views,
        )
        return share_link

    async def get_gallery_share_links(self, gallery_id: int) -> List[ShareLink]:
        result = await self.db.execute(
            select(ShareLink)
            .where(ShareLink.gallery_id == gallery_id)
            .order_by(ShareLink.created_at.desc())
        )
        return list(result.scalars().all())

    async def get_share_link(self, share_link_id: int, gallery_id: int) -> Optional[ShareLink]:
        result = await self.db.execute(
            select(ShareLink)
            .where(ShareLink.id == share_link_id)
            .where(ShareLink.gallery_id == gallery_id)
        )
        return result.scalar_one_or_none()

    async def get_owned_share_link(
        self,
        user_id: int,
        share_link_id: Optional[int] = None,
        token: Optional[str] = None,
    ) -> Optional[ShareLink]:
        """Share link by ID or token, only if its gallery belongs to ``user_id``."""
        query = (
            select(ShareLink)
            .join(Gallery, Gallery.id == ShareLink.gallery_id)
            .where(Gallery.owner_id == user_id)
        )
        if share_link_id is not None:
            query = query.where(ShareLink.id == share_link_id)
        elif token is not None:
            query = query.where(ShareLink.token == token)
        else:
            return None
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def update_share_link(
        self,
        share_link: ShareLink,
        data: ShareLinkUpdate,
        now: Optional[datetime] = None,
    ) -> ShareLink:
        """
        Update a share link's label, permissions, password and limits.

        The view count is left alone; a new view ceiling may not go below it.

        Raises:
            ValueError: expiry in the past, or maxViews below the views already counted
        """
        now = now or datetime.utcnow()
        values = {}
        if data.name is not None:
            values["name"] = data.name
        if data.description is not None:
            values["description"] = data.description or None
        if data.permissions is not None:
            values.update(data.permissions.model_dump())

        if data.clear_password:
            values["password_hash"] = None
        elif data.password:
            values["password_hash"] = hash_password(data.password)

        if data.clear_expiration:
            values["expires_at"] = None
        elif data.expires_at is not None:
            if data.expires_at <= now:
                raise ValueError("expiresAt must be in the future")
            values["expires_at"] = data.expires_at

        if data.clear_max_views:
            values["max_views"] = None
        elif data.max_views is not None:
            if data.max_views < share_link.view_count:
                raise ValueError("maxViews cannot be below the current view count")
            values["max_views"] = data.max_views

        if not values:
            return share_link

        stmt = update(ShareLink).where(ShareLink.id == share_link.id)
        if values.get("max_views") is not None:
            # A view counted since the check above must still fit
            stmt = stmt.where(ShareLink.view_count <= values["max_views"])
        result = await self.db.execute(
            stmt.values(**values)
            .returning(ShareLink.id)
            .execution_options(synchronize_session=False)
        )
        updated = result.scalar_one_or_none()
        await self.db.refresh(share_link)
        if updated is None:
            raise ValueError("maxViews cannot be below the current view count")

        log_info(
            "Share link updated",
            event="share",
            share_link_id=share_link.id,
            gallery_id=share_link.gallery_id,
            fields=sorted(values),
        )
        return share_link

    async def get_share_link_stats(
        self,
        share_link: ShareLink,
        now: Optional[datetime] = None,
        recent: int = 10,
    ) -> ShareLinkStats:
        """Counters and the latest grants of a share link. Counts no view."""
        result = await self.db.execute(
            select(AccessGrantRecord)
            .where(AccessGrantRecord.share_link_id == share_link.id)
            .order_by(AccessGrantRecord.granted_at.desc(), AccessGrantRecord.id.desc())
            .limit(recent)
        )
        state = share_link_state(share_link, now)
        return ShareLinkStats(
            share_link_id=share_link.id,
            total_views=share_link.view_count,
            max_views=share_link.max_views,
            views_remaining=views_remaining(share_link),
            is_active=state is ShareLinkState.ACTIVE,
            is_expired=state is ShareLinkState.EXPIRED,
            expires_at=share_link.expires_at,
            last_accessed=share_link.last_accessed_at,
            recent_access=[
                ShareLinkAccessEntry(
                    granted_at=record.granted_at,
                    client_ip=record.client_ip,
                    invitation_id=record.invitation_id,
                )
                for record in result.scalars().all()
            ],
        )

    async def delete_share_link(self, share_link: ShareLink) -> bool:
        await self.db.delete(share_link)
        await self.db.flush()
        log_info("Share link deleted", event="share", share_link_id=share_link.id)
        return True

    async def verify_password(self, token: str, password: str) -> VerifyPasswordResponse:
        """
        Check a viewer's password for a share link without consuming a view.

        The link's own password is checked, else the gallery-wide one. An
        unknown token costs the same as a wrong password and answers
        ``verified: false``. On success a short-lived share access token
        is returned for the following requests.
        """
        result = await self.db.execute(
            select(ShareLink)
            .where(ShareLink.token == token)
            .options(selectinload(ShareLink.gallery))
        )
        share_link = result.scalar_one_or_none()

        if share_link is None:
            verify_share_password(password, None)
            share_password_verifications_total.labels(result="rejected").inc()
            log_warning("Share password rejected", event="share", reason="not_found")
            return VerifyPasswordResponse(verified=False)

        password_hash = share_link.password_hash or share_link.gallery.gallery_password_hash
        if password_hash is None:
            # Nothing to verify; still pay for one comparison
            verify_share_password(password, None)
            verified = True
        else:
            verified = verify_share_password(password, password_hash)

        if not verified:
            share_password_verifications_total.labels(result="rejected").inc()
            log_warning(
                "Share password rejected",
                event="share",
                share_link_id=share_link.id,
                reason="incorrect_password",
            )
            return VerifyPasswordResponse(verified=False)

        access_token, expires_in = create_share_access_token(share_link.id, password_hash)
        share_password_verifications_total.labels(result="verified").inc()
        log_info("Share password verified", event="share", share_link_id=share_link.id)
        return VerifyPasswordResponse(
            verified=True, access_token=access_token, expires_in=expires_in
        )

    @staticmethod
    def share_url(share_link: ShareLink) -> str:
        return f"{settings.frontend_url.rstrip('/')}/share/{share_link.token}"

    def to_response(self, share_link: ShareLink, now: Optional[datetime] = None) -> ShareLinkResponse:
        return ShareLinkResponse(
            id=share_link.id,
            gallery_id=share_link.gallery_id,
            token=share_link.token,
            name=share_link.name,
            description=share_link.description,
            permissions=ShareLinkPermissions(
                can_view=share_link.can_view,
                can_download=share_link.can_download,
                can_comment=share_link.can_comment,
            ),
            has_password=share_link.has_password,
            expires_at=share_link.expires_at,
            max_views=share_link.max_views,
            view_count=share_link.view_count,
            is_active=is_share_link_active(share_link, now),
            last_accessed_at=share_link.last_accessed_at,
            created_at=share_link.created_at,
            share_url=self.share_url(share_link),
        )

    @staticmethod
    def shared_gallery_response(grant: AccessGrant) -> SharedGalleryResponse:
        """Viewer payload for a granted share link request."""
        gallery = grant.gallery
        share_link = grant.share_link
        invitation = grant.invitation
        photos = [PhotoResponse.model_validate(photo) for photo in gallery.photos]

        return SharedGalleryResponse(
            gallery=SharedGalleryInfo(
                id=gallery.id,
                title=gallery.title,
                description=gallery.description,
                created_at=gallery.created_at,
            ),
            photos=photos,
            photo_count=len(photos),
            permissions=EffectivePermissions(**grant.permissions.as_dict()),
            share_link=SharedLinkInfo(
                name=share_link.name,
                description=share_link.description,
                expires_at=share_link.expires_at,
                views_remaining=views_remaining(share_link),
            ),
            invitation=(
                SharedInvitationInfo(
                    id=invitation.id,
                    type=invitation.type,
                    status=invitation.status,
                    usage_count=invitation.usage_count,
                    max_usage=invitation.max_usage,
                    expires_at=invitation.expires_at,
                )
                if invitation is not None
                else None
            ),
            granted_at=grant.granted_at,
        )
