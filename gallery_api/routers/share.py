"""
Share router: public gallery access through share links, plus the owner
endpoints that edit a link or read its statistics.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from gallery_api.database import get_db
from gallery_api.dependencies.auth import get_current_active_user
from gallery_api.middlewares.rate_limit_middleware import api_rate_limit, share_rate_limit
from gallery_api.models.user import User
from gallery_api.schemas.share import (
    ShareLinkResponse,
    ShareLinkStats,
    ShareLinkUpdate,
    SharedGalleryResponse,
    VerifyPasswordRequest,
    VerifyPasswordResponse,
)
from gallery_api.services.resolver import Denial, DenialReason, GrantResolver
from gallery_api.services.share import ShareLinkService
from gallery_api.utils.client_ip import get_client_ip

router = APIRouter(prefix="/share", tags=["Shared Galleries"])

# Denial reason -> (HTTP status, extra body flags)
DENIAL_RESPONSES = {
    DenialReason.NOT_FOUND: (status.HTTP_404_NOT_FOUND, {}),
    DenialReason.EXPIRED: (status.HTTP_410_GONE, {}),
    DenialReason.LIMIT_REACHED: (status.HTTP_410_GONE, {}),
    DenialReason.REQUIRES_PASSWORD: (status.HTTP_401_UNAUTHORIZED, {"requiresPassword": True}),
    DenialReason.INCORRECT_PASSWORD: (status.HTTP_401_UNAUTHORIZED, {"requiresPassword": True}),
    DenialReason.REQUIRES_INVITATION: (status.HTTP_403_FORBIDDEN, {"requiresInvitation": True}),
    DenialReason.INVITATION_INVALID: (
        status.HTTP_403_FORBIDDEN,
        {"requiresInvitation": True, "invitationInvalid": True},
    ),
}


def denial_response(denial: Denial) -> JSONResponse:
    status_code, flags = DENIAL_RESPONSES[denial.reason]
    return JSONResponse(
        status_code=status_code,
        content={"detail": denial.message, "reason": denial.reason.value, **flags},
    )


@router.get(
    "/{token}",
    response_model=SharedGalleryResponse,
    response_model_by_alias=True,
    summary="Access a shared gallery",
    responses={
        401: {"description": "Password required"},
        403: {"description": "Invitation required or invalid"},
        404: {"description": "Unknown share link"},
        410: {"description": "Share link expired or view limit reached"},
        503: {"description": "Storage temporarily unavailable, retry"},
    },
)
@share_rate_limit
async def get_shared_gallery(
    token: str,
    request: Request,
    password: Optional[str] = Query(None),
    invite: Optional[str] = Query(None, description="Invitation code"),
    access: Optional[str] = Query(None, description="Share access token from verify-password"),
    x_invitation_code: Optional[str] = Header(None),
    x_share_access_token: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db),
):
    """
    Access a gallery with a share link token. No authentication.

    Each granted request counts one view against the link (and one use
    against the invitation, for invite-only galleries).
    """
    resolution = await GrantResolver(db).resolve(
        token,
        password=password,
        invite_code=invite or x_invitation_code,
        access_token=x_share_access_token or access,
        client_ip=get_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    if not resolution.granted:
        return denial_response(resolution)
    return ShareLinkService.shared_gallery_response(resolution)


@router.post(
    "/{token}/verify-password",
    response_model=VerifyPasswordResponse,
    response_model_exclude_none=True,
    summary="Verify a share link password",
)
@share_rate_limit
async def verify_share_password(
    token: str,
    request: Request,
    body: VerifyPasswordRequest,
    db: AsyncSession = Depends(get_db),
) -> VerifyPasswordResponse:
    """
    Check a share link password without counting a view.

    On success returns an access token to send as `X-Share-Access-Token`
    (or `?access=`) on `GET /share/{token}` instead of the password.
    """
    return await ShareLinkService(db).verify_password(token, body.password)


@router.get(
    "/{token}/stats",
    response_model=ShareLinkStats,
    summary="Share link statistics",
)
async def get_share_link_stats(
    token: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> ShareLinkStats:
    """View counters and the latest grants of one of my share links. Counts no view."""
    service = ShareLinkService(db)
    share_link = await service.get_owned_share_link(current_user.id, token=token)
    if not share_link:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Share link not found",
        )
    return await service.get_share_link_stats(share_link)


@router.put(
    "/{share_link_id}",
    response_model=ShareLinkResponse,
    summary="Update a share link",
)
@api_rate_limit
async def update_share_link(
    share_link_id: int,
    request: Request,
    data: ShareLinkUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> ShareLinkResponse:
    """
    Update one of my share links.

    - **password** / **clearPassword**: replace or remove the link password;
      access tokens issued for the old password stop working
    - **expiresAt** / **clearExpiration**: change or remove the expiry
    - **maxViews** / **clearMaxViews**: the ceiling cannot go below the views already counted
    """
    service = ShareLinkService(db)
    share_link = await service.get_owned_share_link(current_user.id, share_link_id=share_link_id)
    if not share_link:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Share link not found",
        )
    try:
        share_link = await service.update_share_link(share_link, data)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return service.to_response(share_link)
