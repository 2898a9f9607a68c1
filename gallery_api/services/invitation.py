"""
Invitation service: creation, listing, updates, revocation and deletion of
invitation codes, and the public pre-check of a code.
"""
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from gallery_api.config import get_settings
from gallery_api.exceptions import InvitationNotLive
from gallery_api.models.gallery import Gallery
from gallery_api.models.invitation import (
    Invitation,
    InvitationStatus,
    InvitationType,
    LIVE_STATUSES,
)
from gallery_api.schemas.invitation import (
    InvitationCreate,
    InvitationGalleryInfo,
    InvitationPermissions,
    InvitationResponse,
    InvitationUpdate,
    InvitationValidation,
)
from gallery_api.services.lifecycle import LifecycleManager, effective_status, initial_status
from gallery_api.services.tokens import add_with_unique_token
from gallery_api.utils.logger import log_info
from gallery_api.utils.prometheus_metrics import invitation_operations_total
from gallery_api.utils.security import generate_invite_code, normalize_invite_code

settings = get_settings()


def resolve_invitation_type(
    requested: Optional[InvitationType],
    max_usage: Optional[int],
    has_explicit_expiry: bool,
) -> InvitationType:
    """Use the requested type, or infer one from the limits supplied."""
    if requested is not None:
        return requested
    if max_usage == 1:
        return InvitationType.SINGLE_USE
    if has_explicit_expiry and max_usage is None:
        return InvitationType.TIME_LIMITED
    return InvitationType.MULTI_USE


class InvitationService:
    """
    Service for invitation management.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.lifecycle = LifecycleManager(db)

    async def create_invitation(
        self,
        gallery: Gallery,
        data: InvitationCreate,
        now: Optional[datetime] = None,
    ) -> Invitation:
        """
        Create an invitation for a gallery.

        Args:
            gallery: Gallery the invitation opens
            data: Invitation creation data
            now: Creation time (naive UTC)

        Returns:
            Created Invitation model

        Raises:
            ValueError: inconsistent limits (expiry in the past, time-limited
                without an expiry, single-use with a higher usage cap)
        """
        now = now or datetime.utcnow()
        invitation_type = resolve_invitation_type(
            data.type, data.max_usage, data.expires_at is not None
        )

        max_usage = data.max_usage
        if invitation_type == InvitationType.SINGLE_USE:
            if max_usage not in (None, 1):
                raise ValueError("Single-use invitations cannot have maxUsage above 1")
            max_usage = 1

        expires_at = data.expires_at
        if expires_at is None and settings.default_invitation_expiry_days > 0:
            expires_at = now + timedelta(days=settings.default_invitation_expiry_days)
        if expires_at is not None and expires_at <= now:
            raise ValueError("expiresAt must be in the future")
        if invitation_type == InvitationType.TIME_LIMITED and expires_at is None:
            raise ValueError("Time-limited invitations need expiresAt")

        permissions = data.permissions

        def build(code: str) -> Invitation:
            return Invitation(
                gallery_id=gallery.id,
                code=code,
                type=invitation_type.value,
                status=initial_status(data.client_email).value,
                client_email=data.client_email,
                client_name=data.client_name,
                description=data.description,
                can_view=permissions.can_view,
                can_favorite=permissions.can_favorite,
                can_comment=permissions.can_comment,
                can_download=permissions.can_download,
                can_request_purchase=permissions.can_request_purchase,
                max_usage=max_usage,
                usage_count=0,
                expires_at=expires_at,
                created_at=now,
            )

        invitation = await add_with_unique_token(
            self.db, Invitation.code, generate_invite_code, build
        )
        await self.db.refresh(invitation)

        invitation_operations_total.labels(operation="create", result="success").inc()
        log_info(
            "Invitation created",
            event="invite",
            invitation_id=invitation.id,
            gallery_id=gallery.id,
            type=invitation.type,
            status=invitation.status,
            max_usage=max_usage,
        )
        return invitation

    async def get_gallery_invitations(self, gallery_id: int) -> List[Invitation]:
        result = await self.db.execute(
            select(Invitation)
            .where(Invitation.gallery_id == gallery_id)
            .order_by(Invitation.created_at.desc(), Invitation.id.desc())
        )
        return list(result.scalars().all())

    async def get_owned_invitation(self, invitation_id: int, user_id: int) -> Optional[Invitation]:
        """Invitation by ID, only if its gallery belongs to ``user_id``."""
        result = await self.db.execute(
            select(Invitation)
            .join(Gallery, Gallery.id == Invitation.gallery_id)
            .where(Invitation.id == invitation_id)
            .where(Gallery.owner_id == user_id)
        )
        return result.scalar_one_or_none()

    async def get_invitation_by_code(self, code: str) -> Optional[Invitation]:
        """Invitation by code (case and surrounding spaces ignored), with its gallery."""
        normalized = normalize_invite_code(code)
        if not normalized:
            return None
        result = await self.db.execute(
            select(Invitation)
            .where(Invitation.code == normalized)
            .options(selectinload(Invitation.gallery))
        )
        return result.scalar_one_or_none()

    async def update_invitation(
        self,
        invitation: Invitation,
        data: InvitationUpdate,
        now: Optional[datetime] = None,
    ) -> Invitation:
        """
        Update a live invitation's details, permissions and limits.

        Raises:
            InvitationNotLive: the invitation is expired or revoked (stored or effective)
            ValueError: inconsistent limits (expiry in the past, usage cap
                below the uses already made, single-use above 1)
        """
        now = now or datetime.utcnow()
        status = effective_status(invitation, now)
        if status not in (InvitationStatus.PENDING, InvitationStatus.ACTIVE):
            raise InvitationNotLive(f"Invitation is {status.value}")

        values = {}
        if data.client_name is not None:
            values["client_name"] = data.client_name or None
        if data.description is not None:
            values["description"] = data.description or None
        if data.permissions is not None:
            values.update(data.permissions.model_dump())

        if data.clear_expiration:
            if invitation.type == InvitationType.TIME_LIMITED.value:
                raise ValueError("Time-limited invitations need expiresAt")
            values["expires_at"] = None
        elif data.expires_at is not None:
            if data.expires_at <= now:
                raise ValueError("expiresAt must be in the future")
            values["expires_at"] = data.expires_at

        if data.max_usage is not None:
            if invitation.type == InvitationType.SINGLE_USE.value and data.max_usage != 1:
                raise ValueError("Single-use invitations cannot have maxUsage above 1")
            if data.max_usage < invitation.usage_count:
                raise ValueError("maxUsage cannot be below the current usage count")
            values["max_usage"] = data.max_usage

        if not values:
            return invitation

        # Never matches a terminal row, nor a cap a concurrent use already passed
        stmt = (
            update(Invitation)
            .where(Invitation.id == invitation.id)
            .where(Invitation.status.in_(LIVE_STATUSES))
        )
        if "max_usage" in values:
            stmt = stmt.where(Invitation.usage_count <= values["max_usage"])
        result = await self.db.execute(
            stmt.values(**values)
            .returning(Invitation.id)
            .execution_options(synchronize_session=False)
        )
        updated = result.scalar_one_or_none()
        await self.db.refresh(invitation)
        if updated is None:
            invitation_operations_total.labels(operation="update", result="failure").inc()
            if invitation.is_terminal:
                raise InvitationNotLive(f"Invitation is {invitation.status}")
            raise ValueError("maxUsage cannot be below the current usage count")

        invitation_operations_total.labels(operation="update", result="success").inc()
        log_info(
            "Invitation updated",
            event="invite",
            invitation_id=invitation.id,
            gallery_id=invitation.gallery_id,
            fields=sorted(values),
        )
        return invitation

    async def resend_invitation(
        self,
        invitation: Invitation,
        now: Optional[datetime] = None,
    ) -> Invitation:
        """
        Check that an invitation can be emailed again. The code, counters and
        status stay as they are.

        Raises:
            ValueError: the invitation has no recipient email
            InvitationNotLive: the invitation is expired or revoked
        """
        if not invitation.client_email:
            raise ValueError("Invitation has no recipient email")
        status = effective_status(invitation, now)
        if status not in (InvitationStatus.PENDING, InvitationStatus.ACTIVE):
            raise InvitationNotLive(f"Invitation is {status.value}")
        return invitation

    async def revoke_invitation(self, invitation: Invitation) -> Invitation:
        """
        Revoke an invitation.

        Raises:
            ValueError: already revoked or already expired
        """
        if not await self.lifecycle.revoke_invitation(invitation):
            await self.db.refresh(invitation)
            raise ValueError(f"Invitation is already {invitation.status}")
        return invitation

    async def delete_invitation(self, invitation: Invitation) -> bool:
        """Revoke (when still live) and then delete an invitation."""
        await self.lifecycle.revoke_invitation(invitation)
        await self.db.delete(invitation)
        await self.db.flush()
        invitation_operations_total.labels(operation="delete", result="success").inc()
        log_info(
            "Invitation deleted",
            event="invite",
            invitation_id=invitation.id,
            gallery_id=invitation.gallery_id,
        )
        return True

    @staticmethod
    def invite_url(invitation: Invitation) -> str:
        return f"{settings.frontend_url.rstrip('/')}/invite/{invitation.code}"

    def to_response(self, invitation: Invitation, now: Optional[datetime] = None) -> InvitationResponse:
        return InvitationResponse(
            id=invitation.id,
            gallery_id=invitation.gallery_id,
            code=invitation.code,
            invite_url=self.invite_url(invitation),
            type=InvitationType(invitation.type),
            status=effective_status(invitation, now),
            client_email=invitation.client_email,
            client_name=invitation.client_name,
            description=invitation.description,
            permissions=InvitationPermissions(
                can_view=invitation.can_view,
                can_favorite=invitation.can_favorite,
                can_comment=invitation.can_comment,
                can_download=invitation.can_download,
                can_request_purchase=invitation.can_request_purchase,
            ),
            max_usage=invitation.max_usage,
            usage_count=invitation.usage_count,
            expires_at=invitation.expires_at,
            created_at=invitation.created_at,
            used_at=invitation.used_at,
        )

    def to_validation(self, invitation: Invitation, now: Optional[datetime] = None) -> InvitationValidation:
        """Public view of a code: whether it would open its gallery now. Read-only."""
        now = now or datetime.utcnow()
        gallery = invitation.gallery
        status = effective_status(invitation, now)
        uses_remaining = None
        if invitation.max_usage is not None:
            uses_remaining = max(0, invitation.max_usage - invitation.usage_count)

        return InvitationValidation(
            code=invitation.code,
            valid=(
                status in (InvitationStatus.PENDING, InvitationStatus.ACTIVE)
                and not gallery.is_expired(now)
            ),
            type=InvitationType(invitation.type),
            status=status,
            gallery=InvitationGalleryInfo(
                id=gallery.id,
                title=gallery.title,
                description=gallery.description,
            ),
            client_name=invitation.client_name,
            description=invitation.description,
            permissions=InvitationPermissions(
                can_view=invitation.can_view,
                can_favorite=invitation.can_favorite,
                can_comment=invitation.can_comment,
                can_download=invitation.can_download,
                can_request_purchase=invitation.can_request_purchase,
            ),
            expires_at=invitation.expires_at,
            uses_remaining=uses_remaining,
        )


async def dispatch_invitation_email(
    invitation_id: int,
    gallery_title: str,
    invite_url: str,
    recipient_email: str,
    operation: str = "send",
) -> None:
    """
    Hand an invitation over for email delivery.

    Delivery is handled outside this service; this hook records the
    request so it can be picked up and traced.
    """
    invitation_operations_total.labels(operation=operation, result="queued").inc()
    log_info(
        "Invitation email dispatch requested",
        event="invite",
        operation=operation,
        invitation_id=invitation_id,
        gallery_title=gallery_title,
        recipient_email=recipient_email,
    )
