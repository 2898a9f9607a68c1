"""
Gallery service: gallery CRUD, access policy and photo registration.
"""
from typing import List, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from gallery_api.models.gallery import Gallery, Photo
from gallery_api.models.user import User
from gallery_api.schemas.gallery import (
    GalleryCreate,
    GalleryResponse,
    GalleryUpdate,
    PhotoCreate,
)
from gallery_api.utils.logger import log_info
from gallery_api.utils.security import hash_password


class GalleryService:
    """
    Service for handling gallery operations.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_gallery(self, user: User, data: GalleryCreate) -> Gallery:
        """
        Create a new gallery.

        Raises:
            ValueError: password protection requested without a password
        """
        if data.require_password and not data.password:
            raise ValueError("A password is required when password protection is enabled")

        gallery = Gallery(
            owner_id=user.id,
            title=data.title,
            description=data.description,
            require_password=data.require_password,
            password_hash=hash_password(data.password) if data.password else None,
            invite_only=data.invite_only,
            expiration_date=data.expiration_date,
            is_published=data.is_published,
        )

        self.db.add(gallery)
        await self.db.flush()
        await self.db.refresh(gallery)
        log_info("Gallery created", event="share", gallery_id=gallery.id, user_id=user.id)
        return gallery

    async def get_gallery_by_id(
        self,
        gallery_id: int,
        user_id: Optional[int] = None,
    ) -> Optional[Gallery]:
        """
        Get a gallery by ID.

        Args:
            gallery_id: Gallery ID
            user_id: If provided, only return if the user owns the gallery
        """
        query = select(Gallery).where(Gallery.id == gallery_id)
        if user_id is not None:
            query = query.where(Gallery.owner_id == user_id)

        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_user_galleries(
        self,
        user_id: int,
        skip: int = 0,
        limit: int = 50,
    ) -> List[Gallery]:
        result = await self.db.execute(
            select(Gallery)
            .where(Gallery.owner_id == user_id)
            .order_by(Gallery.created_at.desc())
            .offset(skip)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def update_gallery(self, gallery: Gallery, data: GalleryUpdate) -> Gallery:
        """
        Update gallery metadata and access policy.

        Raises:
            ValueError: password protection left on without any password
        """
        if data.title is not None:
            gallery.title = data.title
        if data.description is not None:
            # Empty string clears the description
            gallery.description = data.description if data.description.strip() else None

        if data.clear_password:
            gallery.password_hash = None
            gallery.require_password = False
        if data.password:
            gallery.password_hash = hash_password(data.password)
        if data.require_password is not None:
            gallery.require_password = data.require_password
        if gallery.require_password and not gallery.password_hash:
            raise ValueError("A password is required when password protection is enabled")

        if data.invite_only is not None:
            gallery.invite_only = data.invite_only
        if data.clear_expiration:
            gallery.expiration_date = None
        elif data.expiration_date is not None:
            gallery.expiration_date = data.expiration_date
        if data.is_published is not None:
            gallery.is_published = data.is_published

        await self.db.flush()
        await self.db.refresh(gallery)
        log_info("Gallery updated", event="share", gallery_id=gallery.id)
        return gallery

    async def delete_gallery(self, gallery: Gallery) -> bool:
        """Delete a gallery with its photos, share links and invitations."""
        await self.db.delete(gallery)
        await self.db.flush()
        log_info("Gallery deleted", event="share", gallery_id=gallery.id)
        return True

    # ============== Photos ==============

    async def add_photos(self, gallery: Gallery, photos: List[PhotoCreate]) -> List[Photo]:
        """
        Register photos (by URL) at the end of the gallery.

        Returns:
            The created Photo models, in gallery order
        """
        max_order = await self._get_max_order(gallery.id)
        created = []
        for offset, item in enumerate(photos, start=1):
            photo = Photo(
                gallery_id=gallery.id,
                title=item.title,
                filename=item.filename,
                url=item.url,
                thumbnail_url=item.thumbnail_url,
                order=max_order + offset,
            )
            self.db.add(photo)
            created.append(photo)

        await self.db.flush()
        for photo in created:
            await self.db.refresh(photo)
        log_info("Photos added", event="share", gallery_id=gallery.id, count=len(created))
        return created

    async def get_photo_count(self, gallery_id: int) -> int:
        result = await self.db.execute(
            select(func.count(Photo.id)).where(Photo.gallery_id == gallery_id)
        )
        return result.scalar() or 0

    async def _get_max_order(self, gallery_id: int) -> int:
        result = await self.db.execute(
            select(func.max(Photo.order)).where(Photo.gallery_id == gallery_id)
        )
        return result.scalar() or 0

    async def to_response(self, gallery: Gallery) -> GalleryResponse:
        return GalleryResponse(
            id=gallery.id,
            owner_id=gallery.owner_id,
            title=gallery.title,
            description=gallery.description,
            require_password=gallery.require_password,
            has_password=gallery.password_hash is not None,
            invite_only=gallery.invite_only,
            expiration_date=gallery.expiration_date,
            is_published=gallery.is_published,
            photo_count=await self.get_photo_count(gallery.id),
            created_at=gallery.created_at,
            updated_at=gallery.updated_at,
        )
