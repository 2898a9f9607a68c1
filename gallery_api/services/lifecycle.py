"""
Lifecycle of share links and invitations.

Invitations move pending -> active -> expired/revoked. ``expired`` and
``revoked`` are terminal: every status write here is a conditional update
that only matches live rows, so no call sequence can bring a terminal
invitation back. Expiry is evaluated lazily when an invitation is
presented; there is no background sweep.

Share links have no stored status. Their activity is derived from a small
tagged policy (see ``share_link_policy``) at resolution time.
"""
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Union

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from gallery_api.models.invitation import (
    Invitation,
    InvitationStatus,
    LIVE_STATUSES,
)
from gallery_api.models.share import ShareLink
from gallery_api.utils.logger import log_info
from gallery_api.utils.prometheus_metrics import invitation_operations_total


# --- Share link policy ---

@dataclass(frozen=True)
class Unlimited:
    pass


@dataclass(frozen=True)
class ViewLimited:
    max_views: int


@dataclass(frozen=True)
class TimeLimited:
    expires_at: datetime


@dataclass(frozen=True)
class ViewAndTimeLimited:
    max_views: int
    expires_at: datetime


ShareLinkPolicy = Union[Unlimited, ViewLimited, TimeLimited, ViewAndTimeLimited]


class ShareLinkState(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    EXHAUSTED = "exhausted"


def share_link_policy(link: ShareLink) -> ShareLinkPolicy:
    """Classify a share link by which limits it carries."""
    if link.max_views is not None and link.expires_at is not None:
        return ViewAndTimeLimited(link.max_views, link.expires_at)
    if link.max_views is not None:
        return ViewLimited(link.max_views)
    if link.expires_at is not None:
        return TimeLimited(link.expires_at)
    return Unlimited()


def share_link_state(link: ShareLink, now: Optional[datetime] = None) -> ShareLinkState:
    """
    Current state of a share link. Expiry wins over exhaustion.

    ``view_count`` read here is a snapshot; the usage ledger enforces the
    ceiling again atomically when the view is consumed.
    """
    now = now or datetime.utcnow()
    policy = share_link_policy(link)

    if isinstance(policy, Unlimited):
        return ShareLinkState.ACTIVE
    if isinstance(policy, TimeLimited):
        return ShareLinkState.EXPIRED if now > policy.expires_at else ShareLinkState.ACTIVE
    if isinstance(policy, ViewLimited):
        return ShareLinkState.EXHAUSTED if link.view_count >= policy.max_views else ShareLinkState.ACTIVE
    if isinstance(policy, ViewAndTimeLimited):
        if now > policy.expires_at:
            return ShareLinkState.EXPIRED
        if link.view_count >= policy.max_views:
            return ShareLinkState.EXHAUSTED
        return ShareLinkState.ACTIVE
    raise TypeError(f"Unhandled share link policy: {policy!r}")


def is_share_link_active(link: ShareLink, now: Optional[datetime] = None) -> bool:
    return share_link_state(link, now) is ShareLinkState.ACTIVE


def views_remaining(link: ShareLink) -> Optional[int]:
    if link.max_views is None:
        return None
    return max(0, link.max_views - link.view_count)


# --- Invitations ---

def initial_status(client_email: Optional[str]) -> InvitationStatus:
    """Email-bound invitations wait for their first use; open ones are active at once."""
    return InvitationStatus.PENDING if client_email else InvitationStatus.ACTIVE


def is_past_expiry(invitation: Invitation, now: Optional[datetime] = None) -> bool:
    if invitation.expires_at is None:
        return False
    return (now or datetime.utcnow()) > invitation.expires_at


def is_exhausted(invitation: Invitation) -> bool:
    return invitation.max_usage is not None and invitation.usage_count >= invitation.max_usage


def effective_status(invitation: Invitation, now: Optional[datetime] = None) -> InvitationStatus:
    """
    Status as it would be observed right now, without writing anything.

    A live invitation that is past its expiry or out of uses reports
    ``expired`` even if the lazy transition has not been stored yet.
    """
    status = InvitationStatus(invitation.status)
    if status in (InvitationStatus.EXPIRED, InvitationStatus.REVOKED):
        return status
    if is_past_expiry(invitation, now) or is_exhausted(invitation):
        return InvitationStatus.EXPIRED
    return status


class LifecycleManager:
    """
    Writes invitation status transitions.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _transition(self, invitation: Invitation, target: InvitationStatus) -> bool:
        result = await self.db.execute(
            update(Invitation)
            .where(Invitation.id == invitation.id)
            .where(Invitation.status.in_(LIVE_STATUSES))
            .values(status=target.value)
            .returning(Invitation.status)
            .execution_options(synchronize_session=False)
        )
        new_status = result.scalar_one_or_none()
        if new_status is None:
            return False
        set_committed_value(invitation, "status", new_status)
        return True

    async def expire_invitation(self, invitation: Invitation) -> bool:
        """
        Move a live invitation to ``expired``.

        Returns:
            True if this call made the transition, False if it was already terminal
        """
        changed = await self._transition(invitation, InvitationStatus.EXPIRED)
        if changed:
            invitation_operations_total.labels(operation="expire", result="success").inc()
            log_info(
                "Invitation expired",
                event="invite",
                invitation_id=invitation.id,
                gallery_id=invitation.gallery_id,
            )
        return changed

    async def revoke_invitation(self, invitation: Invitation) -> bool:
        """
        Revoke a live invitation. Irreversible and effective for every
        request that has not consumed it yet.

        Returns:
            True if revoked now, False if it was already expired or revoked
        """
        changed = await self._transition(invitation, InvitationStatus.REVOKED)
        invitation_operations_total.labels(
            operation="revoke", result="success" if changed else "noop"
        ).inc()
        if changed:
            log_info(
                "Invitation revoked",
                event="invite",
                invitation_id=invitation.id,
                gallery_id=invitation.gallery_id,
            )
        return changed
