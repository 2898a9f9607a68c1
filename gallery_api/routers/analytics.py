"""
Analytics router: invitation statistics per gallery.
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from gallery_api.database import get_db
from gallery_api.dependencies.auth import get_current_active_user
from gallery_api.models.user import User
from gallery_api.routers.galleries import get_owned_gallery
from gallery_api.schemas.analytics import InviteAnalyticsResponse
from gallery_api.services.analytics import MAX_PERIOD_DAYS, AnalyticsAggregator

router = APIRouter(prefix="/gallery", tags=["Analytics"])


@router.get(
    "/{gallery_id}/invites/analytics",
    response_model=InviteAnalyticsResponse,
    summary="Invitation analytics for a gallery",
)
async def get_invite_analytics(
    gallery_id: int,
    period: int = Query(30, ge=1, le=MAX_PERIOD_DAYS, description="Period in days"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> InviteAnalyticsResponse:
    """
    Invitation counts by status and type, recent activity, a daily
    breakdown over the period, the most used invitations, permission
    usage and share link totals.
    """
    await get_owned_gallery(gallery_id, db, current_user)
    return await AnalyticsAggregator(db).summarize(gallery_id, period_days=period)
