"""
Invitations router: invitation codes for invite-only galleries.
"""
from typing import List

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from gallery_api.database import get_db
from gallery_api.dependencies.auth import get_current_active_user
from gallery_api.exceptions import InvitationNotLive
from gallery_api.middlewares.rate_limit_middleware import api_rate_limit, share_rate_limit
from gallery_api.models.invitation import Invitation
from gallery_api.models.user import User
from gallery_api.routers.galleries import get_owned_gallery
from gallery_api.schemas.invitation import (
    InvitationCreate,
    InvitationResponse,
    InvitationSend,
    InvitationSendResponse,
    InvitationUpdate,
    InvitationValidation,
)
from gallery_api.services.invitation import InvitationService, dispatch_invitation_email
from gallery_api.utils.prometheus_metrics import invitation_operations_total

router = APIRouter(prefix="/invitations", tags=["Invitations"])


async def get_owned_invitation(invitation_id: int, db: AsyncSession, user: User) -> Invitation:
    invitation = await InvitationService(db).get_owned_invitation(invitation_id, user.id)
    if not invitation:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Invitation not found",
        )
    return invitation


@router.post(
    "/create",
    response_model=InvitationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an invitation",
)
@api_rate_limit
async def create_invitation(
    request: Request,
    data: InvitationCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> InvitationResponse:
    """
    Create an invitation code for one of my galleries.

    - **type**: single_use, multi_use or time_limited (inferred when omitted)
    - **maxUsage**: usage cap (single_use is always 1)
    - **expiresAt**: expiry (a default expiry applies when omitted)
    - **clientEmail**: binds the invitation to a recipient; it starts as pending
    """
    gallery = await get_owned_gallery(data.gallery_id, db, current_user)
    service = InvitationService(db)
    try:
        invitation = await service.create_invitation(gallery, data)
    except ValueError as e:
        invitation_operations_total.labels(operation="create", result="failure").inc()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return service.to_response(invitation)


@router.post(
    "/send",
    response_model=InvitationSendResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an invitation and email it",
)
@api_rate_limit
async def send_invitation(
    request: Request,
    data: InvitationSend,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> InvitationSendResponse:
    """
    Create an invitation bound to the recipient and queue the email.
    The invitation exists whether or not delivery succeeds.
    """
    gallery = await get_owned_gallery(data.gallery_id, db, current_user)
    service = InvitationService(db)
    try:
        invitation = await service.create_invitation(gallery, data.as_create())
    except ValueError as e:
        invitation_operations_total.labels(operation="send", result="failure").inc()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    background_tasks.add_task(
        dispatch_invitation_email,
        invitation_id=invitation.id,
        gallery_title=gallery.title,
        invite_url=service.invite_url(invitation),
        recipient_email=data.recipient_email,
    )
    return InvitationSendResponse(invitation=service.to_response(invitation), email_queued=True)


@router.get(
    "/validate/{code}",
    response_model=InvitationValidation,
    summary="Check an invitation code",
)
@share_rate_limit
async def validate_invitation(
    code: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> InvitationValidation:
    """
    Check an invitation code without using it. No authentication.

    Unknown codes answer 404. Known codes answer 200 with `valid` telling
    whether the code would open its gallery right now.
    """
    service = InvitationService(db)
    invitation = await service.get_invitation_by_code(code)
    if not invitation:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Invitation not found",
        )
    return service.to_validation(invitation)


@router.get(
    "/gallery/{gallery_id}",
    response_model=List[InvitationResponse],
    summary="List a gallery's invitations",
)
async def get_gallery_invitations(
    gallery_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> List[InvitationResponse]:
    await get_owned_gallery(gallery_id, db, current_user)
    service = InvitationService(db)
    invitations = await service.get_gallery_invitations(gallery_id)
    return [service.to_response(invitation) for invitation in invitations]


@router.get(
    "/{invitation_id}",
    response_model=InvitationResponse,
    summary="Get an invitation",
)
async def get_invitation(
    invitation_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> InvitationResponse:
    invitation = await get_owned_invitation(invitation_id, db, current_user)
    return InvitationService(db).to_response(invitation)


@router.put(
    "/{invitation_id}",
    response_model=InvitationResponse,
    summary="Update an invitation",
)
@api_rate_limit
async def update_invitation(
    invitation_id: int,
    request: Request,
    data: InvitationUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> InvitationResponse:
    """
    Update a live invitation: recipient name, description, permissions,
    expiry or usage cap. 409 once it is expired or revoked.
    """
    invitation = await get_owned_invitation(invitation_id, db, current_user)
    service = InvitationService(db)
    try:
        invitation = await service.update_invitation(invitation, data)
    except InvitationNotLive as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return service.to_response(invitation)


@router.post(
    "/{invitation_id}/resend",
    response_model=InvitationSendResponse,
    summary="Email an invitation again",
)
@api_rate_limit
async def resend_invitation(
    invitation_id: int,
    request: Request,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> InvitationSendResponse:
    """
    Queue the invitation email again for its recipient. The code and its
    usage stay unchanged.
    """
    invitation = await get_owned_invitation(invitation_id, db, current_user)
    gallery = await get_owned_gallery(invitation.gallery_id, db, current_user)
    service = InvitationService(db)
    try:
        invitation = await service.resend_invitation(invitation)
    except InvitationNotLive as e:
        invitation_operations_total.labels(operation="resend", result="failure").inc()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except ValueError as e:
        invitation_operations_total.labels(operation="resend", result="failure").inc()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    background_tasks.add_task(
        dispatch_invitation_email,
        invitation_id=invitation.id,
        gallery_title=gallery.title,
        invite_url=service.invite_url(invitation),
        recipient_email=invitation.client_email,
        operation="resend",
    )
    return InvitationSendResponse(invitation=service.to_response(invitation), email_queued=True)


@router.post(
    "/{invitation_id}/revoke",
    response_model=InvitationResponse,
    summary="Revoke an invitation",
)
async def revoke_invitation(
    invitation_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> InvitationResponse:
    """Revoke an invitation. Irreversible; 409 if it is already revoked or expired."""
    invitation = await get_owned_invitation(invitation_id, db, current_user)
    service = InvitationService(db)
    try:
        invitation = await service.revoke_invitation(invitation)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return service.to_response(invitation)


@router.delete(
    "/{invitation_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete an invitation",
)
async def delete_invitation(
    invitation_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> Response:
    invitation = await get_owned_invitation(invitation_id, db, current_user)
    await InvitationService(db).delete_invitation(invitation)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
