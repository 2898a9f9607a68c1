"""
Tests for grant resolution: check order, combined consumption, permission
combination and retries on storage trouble.
"""
import asyncio
from datetime import datetime, timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from gallery_api.config import PermissionPolicy, Settings
from gallery_api.database import async_session_maker
from gallery_api.exceptions import StorageConflict
from gallery_api.models.access_grant import AccessGrantRecord
from gallery_api.models.invitation import Invitation, InvitationStatus
from gallery_api.models.share import ShareLink
from gallery_api.services.ledger import ConsumeResult, UsageLedger
from gallery_api.services.lifecycle import LifecycleManager
from gallery_api.services.resolver import (
    AccessGrant,
    Denial,
    DenialReason,
    GrantResolver,
    PermissionSet,
    combine_permissions,
)
from gallery_api.utils.security import create_share_access_token


async def resolve(token, settings=None, **kwargs):
    async with async_session_maker() as session:
        return await GrantResolver(session, settings=settings).resolve(token, **kwargs)


def assert_denied(resolution, reason):
    assert isinstance(resolution, Denial), resolution
    assert resolution.reason is reason


class TestScenarios:
    async def test_single_view_link_under_concurrency(self, make_gallery, make_share_link, fetch):
        gallery = await make_gallery()
        link = await make_share_link(gallery, max_views=1)

        results = await asyncio.gather(resolve(link.token), resolve(link.token))

        grants = [r for r in results if r.granted]
        denials = [r for r in results if not r.granted]
        assert len(grants) == 1
        assert len(denials) == 1
        assert denials[0].reason is DenialReason.LIMIT_REACHED
        assert (await fetch(ShareLink, link.id)).view_count == 1

    async def test_multi_use_invitation_runs_out(self, make_gallery, make_share_link, make_invitation, fetch):
        gallery = await make_gallery(invite_only=True)
        link = await make_share_link(gallery)
        invitation = await make_invitation(gallery, type="multi_use", max_usage=3)

        for expected in (1, 2, 3):
            grant = await resolve(link.token, invite_code=invitation.code)
            assert grant.granted
            assert grant.invitation.usage_count == expected

        stored = await fetch(Invitation, invitation.id)
        assert stored.status == InvitationStatus.EXPIRED.value

        assert_denied(await resolve(link.token, invite_code=invitation.code), DenialReason.INVITATION_INVALID)
        assert (await fetch(Invitation, invitation.id)).usage_count == 3

    async def test_password_protected_link(self, make_gallery, make_share_link, fetch):
        gallery = await make_gallery()
        link = await make_share_link(gallery, password="open-sesame")

        assert_denied(await resolve(link.token), DenialReason.REQUIRES_PASSWORD)
        assert_denied(await resolve(link.token, password="wrong"), DenialReason.REQUIRES_PASSWORD)
        assert (await fetch(ShareLink, link.id)).view_count == 0

        grant = await resolve(link.token, password="open-sesame")
        assert grant.granted
        assert (await fetch(ShareLink, link.id)).view_count == 1

    async def test_other_gallery_code_counts_as_no_invitation(
        self, make_gallery, make_share_link, make_invitation, fetch
    ):
        gallery = await make_gallery(invite_only=True)
        other = await make_gallery(title="Other")
        link = await make_share_link(gallery)
        await make_invitation(gallery)
        foreign = await make_invitation(other)

        resolution = await resolve(link.token, invite_code=foreign.code)
        assert_denied(resolution, DenialReason.REQUIRES_INVITATION)
        assert (await fetch(Invitation, foreign.id)).usage_count == 0


class TestCheckOrder:
    async def test_unknown_token(self, database):
        assert_denied(await resolve("no-such-token"), DenialReason.NOT_FOUND)

    async def test_expired_beats_password(self, make_gallery, make_share_link):
        gallery = await make_gallery()
        link = await make_share_link(
            gallery, password="pw-1234", expires_at=datetime.utcnow() - timedelta(minutes=1)
        )
        assert_denied(await resolve(link.token), DenialReason.EXPIRED)

    async def test_expired_beats_limit(self, make_gallery, make_share_link):
        gallery = await make_gallery()
        link = await make_share_link(gallery, max_views=1, expires_at=datetime.utcnow() + timedelta(hours=1))
        assert (await resolve(link.token)).granted

        later = datetime.utcnow() + timedelta(hours=2)
        assert_denied(await resolve(link.token, now=later), DenialReason.EXPIRED)

    async def test_gallery_expiration_closes_every_link(self, make_gallery, make_share_link):
        gallery = await make_gallery(expiration_date=datetime.utcnow() + timedelta(days=1))
        link = await make_share_link(gallery)

        assert (await resolve(link.token)).granted
        assert_denied(
            await resolve(link.token, now=datetime.utcnow() + timedelta(days=2)),
            DenialReason.EXPIRED,
        )

    async def test_password_checked_before_invitation(self, make_gallery, make_share_link):
        gallery = await make_gallery(invite_only=True)
        link = await make_share_link(gallery, password="pw-1234")
        assert_denied(await resolve(link.token), DenialReason.REQUIRES_PASSWORD)
        assert_denied(await resolve(link.token, password="pw-1234"), DenialReason.REQUIRES_INVITATION)

    async def test_gallery_password_applies_to_links_without_one(self, make_gallery, make_share_link):
        gallery = await make_gallery(require_password=True, password="gallery-pw")
        link = await make_share_link(gallery)

        assert_denied(await resolve(link.token), DenialReason.REQUIRES_PASSWORD)
        assert (await resolve(link.token, password="gallery-pw")).granted

    async def test_share_access_token_replaces_password(self, make_gallery, make_share_link):
        gallery = await make_gallery()
        link = await make_share_link(gallery, password="pw-1234")
        other = await make_share_link(gallery, password="pw-1234")

        capability, _ = create_share_access_token(link.id, link.password_hash)
        assert (await resolve(link.token, access_token=capability)).granted
        assert_denied(await resolve(other.token, access_token=capability), DenialReason.REQUIRES_PASSWORD)

    async def test_revoked_invitation(self, make_gallery, make_share_link, make_invitation):
        gallery = await make_gallery(invite_only=True)
        link = await make_share_link(gallery)
        invitation = await make_invitation(gallery)

        async with async_session_maker() as session:
            stored = await session.get(Invitation, invitation.id)
            await LifecycleManager(session).revoke_invitation(stored)
            await session.commit()

        assert_denied(await resolve(link.token, invite_code=invitation.code), DenialReason.INVITATION_INVALID)

    async def test_lazy_invitation_expiry_is_stored(self, make_gallery, make_share_link, make_invitation, fetch):
        gallery = await make_gallery(invite_only=True)
        link = await make_share_link(gallery)
        invitation = await make_invitation(gallery, expires_at=datetime.utcnow() + timedelta(hours=1))

        later = datetime.utcnow() + timedelta(hours=2)
        resolution = await resolve(link.token, invite_code=invitation.code, now=later)

        assert_denied(resolution, DenialReason.INVITATION_INVALID)
        stored = await fetch(Invitation, invitation.id)
        assert stored.status == InvitationStatus.EXPIRED.value
        assert (await fetch(ShareLink, link.id)).view_count == 0

    async def test_code_lookup_ignores_case(self, make_gallery, make_share_link, make_invitation):
        gallery = await make_gallery(invite_only=True)
        link = await make_share_link(gallery)
        invitation = await make_invitation(gallery)

        assert (await resolve(link.token, invite_code=f" {invitation.code.lower()} ")).granted


class TestConsumption:
    async def test_grant_is_recorded(self, make_gallery, make_share_link, make_invitation, db_session):
        gallery = await make_gallery(invite_only=True)
        link = await make_share_link(gallery)
        invitation = await make_invitation(gallery)

        grant = await resolve(
            link.token, invite_code=invitation.code, client_ip="203.0.113.9", user_agent="pytest"
        )
        assert isinstance(grant, AccessGrant)

        record = (await db_session.execute(select(AccessGrantRecord))).scalar_one()
        await db_session.commit()
        assert record.id == grant.record_id
        assert record.gallery_id == gallery.id
        assert record.share_link_id == link.id
        assert record.invitation_id == invitation.id
        assert record.client_ip == "203.0.113.9"
        assert record.permissions["can_view"] is True

    async def test_failed_invitation_use_gives_the_view_back(
        self, make_gallery, make_share_link, make_invitation, fetch, monkeypatch
    ):
        gallery = await make_gallery(invite_only=True)
        link = await make_share_link(gallery, max_views=5)
        invitation = await make_invitation(gallery)

        async def lost_race(self, invitation, now):
            return ConsumeResult(granted=False)

        monkeypatch.setattr(UsageLedger, "consume_invitation_use", lost_race)
        resolution = await resolve(link.token, invite_code=invitation.code)

        assert_denied(resolution, DenialReason.INVITATION_INVALID)
        assert (await fetch(ShareLink, link.id)).view_count == 0

    async def test_concurrent_views_stop_at_the_ceiling(self, make_gallery, make_share_link, fetch):
        gallery = await make_gallery()
        link = await make_share_link(gallery, max_views=3)

        results = await asyncio.gather(*(resolve(link.token) for _ in range(7)))

        assert sum(1 for r in results if r.granted) == 3
        assert {r.reason for r in results if not r.granted} == {DenialReason.LIMIT_REACHED}
        assert (await fetch(ShareLink, link.id)).view_count == 3

    async def test_concurrent_invitation_uses(self, make_gallery, make_share_link, make_invitation, fetch):
        gallery = await make_gallery(invite_only=True)
        link = await make_share_link(gallery)
        invitation = await make_invitation(gallery, type="single_use")

        results = await asyncio.gather(
            *(resolve(link.token, invite_code=invitation.code) for _ in range(4))
        )

        assert sum(1 for r in results if r.granted) == 1
        assert (await fetch(Invitation, invitation.id)).usage_count == 1
        assert (await fetch(ShareLink, link.id)).view_count == 1


class TestPermissions:
    LINK = PermissionSet(can_view=True, can_download=True, can_comment=False)
    INVITE = PermissionSet(
        can_view=True, can_download=False, can_comment=True, can_favorite=True, can_request_purchase=False
    )

    def test_without_invitation_only_link_permissions(self):
        combined = combine_permissions(self.LINK, None)
        assert combined == self.LINK
        assert combined.can_favorite is False

    def test_intersect(self):
        combined = combine_permissions(self.LINK, self.INVITE, PermissionPolicy.INTERSECT)
        assert (combined.can_view, combined.can_download, combined.can_comment) == (True, False, False)
        assert combined.can_favorite is True
        assert combined.can_request_purchase is False

    def test_union(self):
        combined = combine_permissions(self.LINK, self.INVITE, PermissionPolicy.UNION)
        assert (combined.can_view, combined.can_download, combined.can_comment) == (True, True, True)

    def test_invitation_overrides(self):
        combined = combine_permissions(self.LINK, self.INVITE, PermissionPolicy.INVITATION_OVERRIDES)
        assert (combined.can_download, combined.can_comment) == (False, True)

    async def test_policy_from_settings(self, make_gallery, make_share_link, make_invitation):
        gallery = await make_gallery(invite_only=True)
        link = await make_share_link(gallery, permissions={"canView": True, "canDownload": True})
        invitation = await make_invitation(gallery, max_usage=5, permissions={"canDownload": False})

        intersect = await resolve(link.token, invite_code=invitation.code)
        union = await resolve(
            link.token,
            invite_code=invitation.code,
            settings=Settings(permission_policy=PermissionPolicy.UNION),
        )
        assert intersect.permissions.can_download is False
        assert union.permissions.can_download is True


class TestStorageRetries:
    async def test_transient_failure_is_retried(self, make_gallery, make_share_link, monkeypatch):
        gallery = await make_gallery()
        link = await make_share_link(gallery)
        original = GrantResolver._resolve_once
        calls = []

        async def flaky(self, **kwargs):
            calls.append(1)
            if len(calls) == 1:
                raise OperationalError("UPDATE share_links", {}, Exception("database is locked"))
            return await original(self, **kwargs)

        monkeypatch.setattr(GrantResolver, "_resolve_once", flaky)
        grant = await resolve(link.token)

        assert grant.granted
        assert len(calls) == 2

    async def test_exhausted_retries_raise_storage_conflict(self, make_gallery, make_share_link, monkeypatch):
        gallery = await make_gallery()
        link = await make_share_link(gallery)

        async def locked(self, **kwargs):
            raise OperationalError("UPDATE share_links", {}, Exception("database is locked"))

        monkeypatch.setattr(GrantResolver, "_resolve_once", locked)
        with pytest.raises(StorageConflict):
            await resolve(link.token, settings=Settings(storage_retry_attempts=2))

    async def test_slow_commit_counts_one_view(self, make_gallery, make_share_link, fetch, monkeypatch):
        gallery = await make_gallery()
        link = await make_share_link(gallery, max_views=3)
        original = AsyncSession.commit
        commits = []

        async def slow_commit(self):
            await original(self)
            commits.append(1)
            if len(commits) == 1:
                # Outlasts the storage timeout after the write is durable
                await asyncio.sleep(0.5)

        monkeypatch.setattr(AsyncSession, "commit", slow_commit)
        grant = await resolve(link.token, settings=Settings(storage_timeout_seconds=0.2))

        assert grant.granted
        stored = await fetch(ShareLink, link.id)
        assert stored.view_count == 1

    async def test_failed_commit_is_not_retried(self, make_gallery, make_share_link, fetch, monkeypatch):
        gallery = await make_gallery()
        link = await make_share_link(gallery, max_views=1)
        original_resolve = GrantResolver._resolve_once
        original_commit = AsyncSession.commit
        attempts = []
        commits = []

        async def counting(self, **kwargs):
            attempts.append(1)
            return await original_resolve(self, **kwargs)

        async def failing_commit(self):
            commits.append(1)
            if len(commits) == 1:
                raise OperationalError("COMMIT", {}, Exception("disk I/O error"))
            await original_commit(self)

        monkeypatch.setattr(GrantResolver, "_resolve_once", counting)
        monkeypatch.setattr(AsyncSession, "commit", failing_commit)
        with pytest.raises(StorageConflict):
            await resolve(link.token)

        assert len(attempts) == 1
        assert (await fetch(ShareLink, link.id)).view_count == 0
        assert (await resolve(link.token)).granted
