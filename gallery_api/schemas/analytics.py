"""
Invitation analytics response schemas.
"""
import datetime as dt
from typing import List, Optional

from gallery_api.schemas.base import CamelModel


class InviteSummary(CamelModel):
    total_invites: int
    active_invites: int
    expired_invites: int
    revoked_invites: int
    pending_invites: int
    total_usage: int
    average_usage: float


class TypeBreakdown(CamelModel):
    single_use: int
    multi_use: int
    time_limited: int


class RecentActivity(CamelModel):
    period: int
    invites_created: int
    total_usage: int


class DailyBreakdownEntry(CamelModel):
    date: dt.date
    invites_created: int
    total_usage: int
    grants: int


class TopInvite(CamelModel):
    id: int
    client_email: Optional[str] = None
    type: str
    usage_count: int
    max_usage: Optional[int] = None
    created_at: dt.datetime
    status: str


class PermissionStats(CamelModel):
    can_view: int
    can_favorite: int
    can_comment: int
    can_download: int
    can_request_purchase: int


class ShareLinkStats(CamelModel):
    total_links: int
    total_views: int
    grants_in_period: int


class InviteAnalyticsResponse(CamelModel):
    summary: InviteSummary
    type_breakdown: TypeBreakdown
    recent_activity: RecentActivity
    daily_breakdown: List[DailyBreakdownEntry]
    top_invites: List[TopInvite]
    permission_stats: PermissionStats
    share_links: ShareLinkStats
    period: int

