"""
Galleries router: gallery management, photos and share links.
"""
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from gallery_api.database import get_db
from gallery_api.dependencies.auth import get_current_active_user
from gallery_api.models.gallery import Gallery
from gallery_api.models.user import User
from gallery_api.schemas.gallery import (
    GalleryCreate,
    GalleryResponse,
    GalleryUpdate,
    PhotoAdd,
    PhotoResponse,
)
from gallery_api.schemas.share import ShareLinkCreate, ShareLinkResponse
from gallery_api.services.gallery import GalleryService
from gallery_api.services.share import ShareLinkService

router = APIRouter(prefix="/galleries", tags=["Galleries"])


async def get_owned_gallery(gallery_id: int, db: AsyncSession, user: User) -> Gallery:
    gallery = await GalleryService(db).get_gallery_by_id(gallery_id, user_id=user.id)
    if not gallery:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Gallery not found",
        )
    return gallery


@router.post(
    "",
    response_model=GalleryResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a gallery",
)
async def create_gallery(
    data: GalleryCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> GalleryResponse:
    """
    Create a gallery with its access policy.

    - **title**: Gallery title (required)
    - **requirePassword** / **password**: gallery-wide password
    - **inviteOnly**: viewers also need an invitation code
    - **expirationDate**: after this date no share link opens the gallery
    """
    service = GalleryService(db)
    try:
        gallery = await service.create_gallery(current_user, data)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return await service.to_response(gallery)


@router.get(
    "",
    response_model=List[GalleryResponse],
    summary="List my galleries",
)
async def get_galleries(
    skip: int = 0,
    limit: int = 50,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> List[GalleryResponse]:
    service = GalleryService(db)
    galleries = await service.get_user_galleries(current_user.id, skip=skip, limit=min(limit, 100))
    return [await service.to_response(gallery) for gallery in galleries]


@router.get(
    "/{gallery_id}",
    response_model=GalleryResponse,
    summary="Get a gallery",
)
async def get_gallery(
    gallery_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> GalleryResponse:
    gallery = await get_owned_gallery(gallery_id, db, current_user)
    return await GalleryService(db).to_response(gallery)


@router.patch(
    "/{gallery_id}",
    response_model=GalleryResponse,
    summary="Update a gallery",
)
async def update_gallery(
    gallery_id: int,
    data: GalleryUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> GalleryResponse:
    """
    Update gallery details and access policy. Changes apply to every
    share link of the gallery from the next request on.
    """
    gallery = await get_owned_gallery(gallery_id, db, current_user)
    service = GalleryService(db)
    try:
        gallery = await service.update_gallery(gallery, data)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return await service.to_response(gallery)


@router.delete(
    "/{gallery_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a gallery",
)
async def delete_gallery(
    gallery_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> Response:
    gallery = await get_owned_gallery(gallery_id, db, current_user)
    await GalleryService(db).delete_gallery(gallery)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{gallery_id}/photos",
    response_model=List[PhotoResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Add photos to a gallery",
)
async def add_photos(
    gallery_id: int,
    data: PhotoAdd,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> List[PhotoResponse]:
    """Register photos by URL; they are appended in the given order."""
    gallery = await get_owned_gallery(gallery_id, db, current_user)
    photos = await GalleryService(db).add_photos(gallery, data.photos)
    return [PhotoResponse.model_validate(photo) for photo in photos]


# ============== Share Links ==============

@router.post(
    "/{gallery_id}/share-links",
    response_model=ShareLinkResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a share link",
)
async def create_share_link(
    gallery_id: int,
    data: ShareLinkCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> ShareLinkResponse:
    """
    Create a share link for a gallery.

    - **name**: Label shown to the photographer
    - **password**: optional, required from viewers
    - **expiresAt** / **expiresInDays**: optional expiry
    - **maxViews**: optional view ceiling
    """
    gallery = await get_owned_gallery(gallery_id, db, current_user)
    service = ShareLinkService(db)
    share_link = await service.create_share_link(gallery, data)
    return service.to_response(share_link)


@router.get(
    "/{gallery_id}/share-links",
    response_model=List[ShareLinkResponse],
    summary="List share links",
)
async def get_share_links(
    gallery_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> List[ShareLinkResponse]:
    await get_owned_gallery(gallery_id, db, current_user)
    service = ShareLinkService(db)
    links = await service.get_gallery_share_links(gallery_id)
    return [service.to_response(link) for link in links]


@router.delete(
    "/{gallery_id}/share-links/{share_link_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a share link",
)
async def delete_share_link(
    gallery_id: int,
    share_link_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> Response:
    await get_owned_gallery(gallery_id, db, current_user)
    service = ShareLinkService(db)
    share_link = await service.get_share_link(share_link_id, gallery_id)
    if not share_link:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Share link not found",
        )
    await service.delete_share_link(share_link)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
