"""
Grant resolution: decides whether a share link request gets the gallery.

Order of checks for ``GET /share/{token}``:

1. look up the share link (unknown -> not_found)
2. link or gallery expired -> expired
3. view ceiling reached -> limit_reached
4. password (link's own, else the gallery's) or a share access capability
5. invite-only galleries need a live invitation for that gallery
6. consume one view and, if present, one invitation use, atomically
7. combine permissions
8. record the grant and commit

Steps 1-7 and the grant record run under the storage timeout and are
retried as a whole on lock trouble. The commit runs once, outside both:
after it has been awaited the consumption may already be durable, so a
failure there is reported and never retried.

Denials are returned as values. Only storage trouble raises, as
``StorageConflict``.
"""
import asyncio
import time
from dataclasses import asdict, dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Union

from sqlalchemy import select
from sqlalchemy.exc import OperationalError, TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from gallery_api.config import PermissionPolicy, Settings, get_settings
from gallery_api.exceptions import StorageConflict
from gallery_api.models.access_grant import AccessGrantRecord
from gallery_api.models.gallery import Gallery
from gallery_api.models.invitation import Invitation
from gallery_api.models.share import ShareLink
from gallery_api.services.ledger import UsageLedger
from gallery_api.services.lifecycle import (
    LifecycleManager,
    ShareLinkState,
    is_exhausted,
    is_past_expiry,
    share_link_state,
)
from gallery_api.utils.logger import log_error, log_info, log_warning
from gallery_api.utils.prometheus_metrics import (
    share_link_access_duration_seconds,
    share_link_access_total,
    storage_conflicts_total,
)
from gallery_api.utils.retry import retry_with_backoff
from gallery_api.utils.security import (
    normalize_invite_code,
    verify_share_access_token,
    verify_share_password,
)


class DenialReason(str, Enum):
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    LIMIT_REACHED = "limit_reached"
    REQUIRES_PASSWORD = "requires_password"
    INCORRECT_PASSWORD = "incorrect_password"
    REQUIRES_INVITATION = "requires_invitation"
    INVITATION_INVALID = "invitation_invalid"


@dataclass(frozen=True)
class Denial:
    reason: DenialReason
    message: str

    granted = False


@dataclass(frozen=True)
class PermissionSet:
    can_view: bool
    can_download: bool
    can_comment: bool
    can_favorite: bool = False
    can_request_purchase: bool = False

    @classmethod
    def from_share_link(cls, link: ShareLink) -> "PermissionSet":
        return cls(
            can_view=bool(link.can_view),
            can_download=bool(link.can_download),
            can_comment=bool(link.can_comment),
        )

    @classmethod
    def from_invitation(cls, invitation: Invitation) -> "PermissionSet":
        return cls(
            can_view=bool(invitation.can_view),
            can_download=bool(invitation.can_download),
            can_comment=bool(invitation.can_comment),
            can_favorite=bool(invitation.can_favorite),
            can_request_purchase=bool(invitation.can_request_purchase),
        )

    def as_dict(self) -> dict:
        return asdict(self)


# Permissions both a share link and an invitation carry
SHARED_PERMISSIONS = ("can_view", "can_download", "can_comment")


def combine_permissions(
    share: PermissionSet,
    invitation: Optional[PermissionSet],
    policy: PermissionPolicy = PermissionPolicy.INTERSECT,
) -> PermissionSet:
    """
    Merge a share link's permissions with an invitation's.

    Permissions only invitations carry (favorite, request purchase) come
    from the invitation whatever the policy.
    """
    if invitation is None:
        return share

    combined = {}
    for key in SHARED_PERMISSIONS:
        on_link = getattr(share, key)
        on_invite = getattr(invitation, key)
        if policy == PermissionPolicy.UNION:
            combined[key] = on_link or on_invite
        elif policy == PermissionPolicy.INVITATION_OVERRIDES:
            combined[key] = on_invite
        else:
            combined[key] = on_link and on_invite

    return PermissionSet(
        can_favorite=invitation.can_favorite,
        can_request_purchase=invitation.can_request_purchase,
        **combined,
    )


@dataclass
class AccessGrant:
    gallery: Gallery
    share_link: ShareLink
    invitation: Optional[Invitation]
    permissions: PermissionSet
    granted_at: datetime
    record_id: int

    granted = True

    @property
    def gallery_id(self) -> int:
        return self.gallery.id

    @property
    def share_link_id(self) -> int:
        return self.share_link.id

    @property
    def invitation_id(self) -> Optional[int]:
        return self.invitation.id if self.invitation is not None else None


Resolution = Union[AccessGrant, Denial]


@dataclass
class _Staged:
    """A resolution whose writes are flushed but not yet committed."""

    resolution: Resolution
    commit: bool = False


class GrantResolver:
    """
    Resolves share link requests into grants or denials.

    One instance per request/session. ``resolve`` commits on a grant (and
    on a lazy invitation expiry) and rolls back everything else.
    """

    def __init__(self, db: AsyncSession, settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings or get_settings()
        self.ledger = UsageLedger(db)
        self.lifecycle = LifecycleManager(db)

    async def resolve(
        self,
        token: str,
        password: Optional[str] = None,
        invite_code: Optional[str] = None,
        access_token: Optional[str] = None,
        client_ip: Optional[str] = None,
        user_agent: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Resolution:
        """
        Resolve a share link request.

        Args:
            token: Share link token from the URL
            password: Viewer-supplied password, if any
            invite_code: Invitation code, if any
            access_token: Share access capability from verify-password, if any
            client_ip: Recorded on the grant
            user_agent: Recorded on the grant
            now: Evaluation time (naive UTC); defaults to the current time

        Returns:
            AccessGrant or Denial

        Raises:
            StorageConflict: storage stayed unavailable through every retry,
                or the final commit failed
        """
        start = time.perf_counter()
        try:
            staged = await retry_with_backoff(
                self._attempt,
                max_attempts=self.settings.storage_retry_attempts,
                retryable_exceptions=(StorageConflict,),
                target="grant.resolve",
                token=token,
                password=password,
                invite_code=invite_code,
                access_token=access_token,
                client_ip=client_ip,
                user_agent=user_agent,
                now=now,
            )
        except StorageConflict:
            storage_conflicts_total.labels(stage="exhausted").inc()
            share_link_access_total.labels(result="storage_conflict").inc()
            raise

        if staged.commit:
            await self._commit()
        resolution = staged.resolution
        if resolution.granted:
            log_info(
                "Gallery access granted",
                event="grant",
                gallery_id=resolution.gallery_id,
                share_link_id=resolution.share_link_id,
                invitation_id=resolution.invitation_id,
                view_count=resolution.share_link.view_count,
            )

        result = "granted" if resolution.granted else resolution.reason.value
        share_link_access_total.labels(result=result).inc()
        share_link_access_duration_seconds.labels(result=result).observe(
            time.perf_counter() - start
        )
        return resolution

    async def _attempt(self, **kwargs) -> _Staged:
        try:
            return await asyncio.wait_for(
                self._resolve_once(**kwargs),
                timeout=self.settings.storage_timeout_seconds,
            )
        except (asyncio.TimeoutError, OperationalError, PoolTimeoutError) as e:
            storage_conflicts_total.labels(stage="attempt").inc()
            await self.db.rollback()
            raise StorageConflict(
                f"Storage unavailable while resolving access ({type(e).__name__})"
            ) from e

    async def _commit(self) -> None:
        try:
            await self.db.commit()
        except (OperationalError, PoolTimeoutError) as e:
            storage_conflicts_total.labels(stage="commit").inc()
            share_link_access_total.labels(result="storage_conflict").inc()
            log_error(
                "Commit failed after access was staged",
                event="grant",
                error_type=type(e).__name__,
            )
            await self.db.rollback()
            raise StorageConflict(
                f"Storage unavailable while committing access ({type(e).__name__})"
            ) from e

    async def _resolve_once(
        self,
        token: str,
        password: Optional[str],
        invite_code: Optional[str],
        access_token: Optional[str],
        client_ip: Optional[str],
        user_agent: Optional[str],
        now: Optional[datetime],
    ) -> _Staged:
        now = now or datetime.utcnow()

        share_link = await self._load_share_link(token)
        if share_link is None:
            # Same cost as a password check, so unknown tokens don't stand out
            verify_share_password(password, None)
            return await self._deny(DenialReason.NOT_FOUND, "Share link not found")

        gallery = share_link.gallery
        state = share_link_state(share_link, now)
        if state is ShareLinkState.EXPIRED or gallery.is_expired(now):
            return await self._deny(
                DenialReason.EXPIRED, "Share link has expired", share_link_id=share_link.id
            )
        if state is ShareLinkState.EXHAUSTED:
            return await self._deny(
                DenialReason.LIMIT_REACHED,
                "Share link view limit reached",
                share_link_id=share_link.id,
            )

        password_hash = share_link.password_hash or gallery.gallery_password_hash
        if password_hash is not None and not verify_share_access_token(
            access_token, share_link.id, password_hash
        ):
            if not verify_share_password(password, password_hash):
                return await self._deny(
                    DenialReason.REQUIRES_PASSWORD,
                    "Password required",
                    share_link_id=share_link.id,
                )

        invitation = None
        if gallery.invite_only:
            if not invite_code:
                return await self._deny(
                    DenialReason.REQUIRES_INVITATION,
                    "Invitation required",
                    share_link_id=share_link.id,
                )
            invitation = await self._load_invitation(invite_code, gallery.id)
            if invitation is None:
                return await self._deny(
                    DenialReason.REQUIRES_INVITATION,
                    "Invitation required",
                    share_link_id=share_link.id,
                )
            if invitation.is_terminal or is_exhausted(invitation):
                return await self._deny(
                    DenialReason.INVITATION_INVALID,
                    "Invitation is no longer valid",
                    share_link_id=share_link.id,
                    invitation_id=invitation.id,
                )
            if is_past_expiry(invitation, now):
                await self.lifecycle.expire_invitation(invitation)
                log_warning(
                    "Gallery access denied",
                    event="grant",
                    reason=DenialReason.INVITATION_INVALID.value,
                    share_link_id=share_link.id,
                    invitation_id=invitation.id,
                )
                # The expiry is kept; no view or use has been consumed
                return _Staged(
                    Denial(DenialReason.INVITATION_INVALID, "Invitation has expired"),
                    commit=True,
                )

        view = await self.ledger.consume_share_view(share_link, now)
        if not view.granted:
            return await self._deny(
                DenialReason.LIMIT_REACHED,
                "Share link view limit reached",
                share_link_id=share_link.id,
            )
        if invitation is not None:
            use = await self.ledger.consume_invitation_use(invitation, now)
            if not use.granted:
                # Undoes the view counted above
                return await self._deny(
                    DenialReason.INVITATION_INVALID,
                    "Invitation is no longer valid",
                    share_link_id=share_link.id,
                    invitation_id=invitation.id,
                )

        permissions = combine_permissions(
            PermissionSet.from_share_link(share_link),
            PermissionSet.from_invitation(invitation) if invitation is not None else None,
            self.settings.permission_policy,
        )

        record = AccessGrantRecord(
            gallery_id=gallery.id,
            share_link_id=share_link.id,
            invitation_id=invitation.id if invitation is not None else None,
            permissions=permissions.as_dict(),
            client_ip=client_ip,
            user_agent=(user_agent or "")[:512] or None,
            granted_at=now,
        )
        self.db.add(record)
        await self.db.flush()

        grant = AccessGrant(
            gallery=gallery,
            share_link=share_link,
            invitation=invitation,
            permissions=permissions,
            granted_at=now,
            record_id=record.id,
        )
        return _Staged(grant, commit=True)

    async def _deny(self, reason: DenialReason, message: str, **context) -> _Staged:
        await self.db.rollback()
        log_warning("Gallery access denied", event="grant", reason=reason.value, **context)
        return _Staged(Denial(reason=reason, message=message))

    async def _load_share_link(self, token: str) -> Optional[ShareLink]:
        if not token:
            return None
        result = await self.db.execute(
            select(ShareLink)
            .where(ShareLink.token == token)
            .options(selectinload(ShareLink.gallery).selectinload(Gallery.photos))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _load_invitation(self, code: str, gallery_id: int) -> Optional[Invitation]:
        result = await self.db.execute(
            select(Invitation)
            .where(Invitation.code == normalize_invite_code(code))
            .where(Invitation.gallery_id == gallery_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()
