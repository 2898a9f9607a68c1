"""
Invitation analytics for the photographer dashboard.
"""
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from gallery_api.models.access_grant import AccessGrantRecord
from gallery_api.models.invitation import Invitation, InvitationStatus, InvitationType
from gallery_api.models.share import ShareLink
from gallery_api.schemas.analytics import (
    DailyBreakdownEntry,
    InviteAnalyticsResponse,
    InviteSummary,
    PermissionStats,
    RecentActivity,
    ShareLinkStats,
    TopInvite,
    TypeBreakdown,
)
from gallery_api.services.lifecycle import effective_status
from gallery_api.utils.logger import log_info

TOP_INVITES_LIMIT = 5
MAX_PERIOD_DAYS = 365


class AnalyticsAggregator:
    """
    Read-only aggregation over a gallery's invitations, share links and
    grant audit trail.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def summarize(
        self,
        gallery_id: int,
        period_days: int = 30,
        now: Optional[datetime] = None,
    ) -> InviteAnalyticsResponse:
        """
        Build the analytics report for one gallery.

        Args:
            gallery_id: Gallery ID (ownership is checked by the caller)
            period_days: Window for recent activity and daily breakdown (1..365)
            now: Evaluation time (naive UTC)

        Returns:
            InviteAnalyticsResponse
        """
        if not 1 <= period_days <= MAX_PERIOD_DAYS:
            raise ValueError(f"period must be between 1 and {MAX_PERIOD_DAYS} days")

        now = now or datetime.utcnow()
        today = now.date()
        first_day = today - timedelta(days=period_days - 1)
        period_start = datetime.combine(first_day, datetime.min.time())

        result = await self.db.execute(
            select(Invitation)
            .where(Invitation.gallery_id == gallery_id)
            .order_by(Invitation.created_at.asc())
        )
        invitations = list(result.scalars().all())

        statuses = [effective_status(inv, now) for inv in invitations]
        total_usage = sum(inv.usage_count for inv in invitations)
        summary = InviteSummary(
            total_invites=len(invitations),
            active_invites=statuses.count(InvitationStatus.ACTIVE),
            expired_invites=statuses.count(InvitationStatus.EXPIRED),
            revoked_invites=statuses.count(InvitationStatus.REVOKED),
            pending_invites=statuses.count(InvitationStatus.PENDING),
            total_usage=total_usage,
            average_usage=round(total_usage / len(invitations), 2) if invitations else 0,
        )

        types = [inv.type for inv in invitations]
        type_breakdown = TypeBreakdown(
            single_use=types.count(InvitationType.SINGLE_USE.value),
            multi_use=types.count(InvitationType.MULTI_USE.value),
            time_limited=types.count(InvitationType.TIME_LIMITED.value),
        )

        recent = [inv for inv in invitations if inv.created_at >= period_start]
        recent_activity = RecentActivity(
            period=period_days,
            invites_created=len(recent),
            total_usage=sum(inv.usage_count for inv in recent),
        )

        grant_days = await self._grant_days(gallery_id, period_start)
        daily_breakdown = self._daily_breakdown(recent, grant_days, first_day, period_days)

        used = [inv for inv in invitations if inv.usage_count > 0]
        used.sort(key=lambda inv: inv.usage_count, reverse=True)
        top_invites = [
            TopInvite(
                id=inv.id,
                client_email=inv.client_email,
                type=inv.type,
                usage_count=inv.usage_count,
                max_usage=inv.max_usage,
                created_at=inv.created_at,
                status=effective_status(inv, now).value,
            )
            for inv in used[:TOP_INVITES_LIMIT]
        ]

        permission_stats = PermissionStats(
            can_view=sum(1 for inv in invitations if inv.can_view),
            can_favorite=sum(1 for inv in invitations if inv.can_favorite),
            can_comment=sum(1 for inv in invitations if inv.can_comment),
            can_download=sum(1 for inv in invitations if inv.can_download),
            can_request_purchase=sum(1 for inv in invitations if inv.can_request_purchase),
        )

        link_row = (
            await self.db.execute(
                select(func.count(ShareLink.id), func.coalesce(func.sum(ShareLink.view_count), 0))
                .where(ShareLink.gallery_id == gallery_id)
            )
        ).one()
        share_links = ShareLinkStats(
            total_links=link_row[0],
            total_views=link_row[1],
            grants_in_period=sum(grant_days.values()),
        )

        log_info(
            "Invitation analytics computed",
            event="analytics",
            gallery_id=gallery_id,
            period=period_days,
            total_invites=summary.total_invites,
        )
        return InviteAnalyticsResponse(
            summary=summary,
            type_breakdown=type_breakdown,
            recent_activity=recent_activity,
            daily_breakdown=daily_breakdown,
            top_invites=top_invites,
            permission_stats=permission_stats,
            share_links=share_links,
            period=period_days,
        )

    async def _grant_days(self, gallery_id: int, since: datetime) -> Dict[date, int]:
        result = await self.db.execute(
            select(AccessGrantRecord.granted_at)
            .where(AccessGrantRecord.gallery_id == gallery_id)
            .where(AccessGrantRecord.granted_at >= since)
        )
        counts: Dict[date, int] = {}
        for granted_at in result.scalars():
            day = granted_at.date()
            counts[day] = counts.get(day, 0) + 1
        return counts

    @staticmethod
    def _daily_breakdown(
        invitations: List[Invitation],
        grant_days: Dict[date, int],
        first_day: date,
        period_days: int,
    ) -> List[DailyBreakdownEntry]:
        created: Dict[date, int] = {}
        usage: Dict[date, int] = {}
        for inv in invitations:
            day = inv.created_at.date()
            created[day] = created.get(day, 0) + 1
            usage[day] = usage.get(day, 0) + inv.usage_count

        entries = []
        for offset in range(period_days):
            day = first_day + timedelta(days=offset)
            entries.append(
                DailyBreakdownEntry(
                    date=day,
                    invites_created=created.get(day, 0),
                    total_usage=usage.get(day, 0),
                    grants=grant_days.get(day, 0),
                )
            )
        return entries
