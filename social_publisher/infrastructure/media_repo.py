# social_publisher/infrastructure/media_repo.py
from typing import Optional, List, Sequence
from sqlalchemy import delete
from sqlmodel import select, col
import uuid

from social_publisher.infrastructure.database import Repository
from social_publisher.models.media import MediaItem
from social_publisher.models.post import SocialPostMedia


class MediaRepository(Repository):
    async def create(self, item: MediaItem) -> MediaItem:
        self.session.add(item)
        await self._commit()
        await self.session.refresh(item)
        return item

    async def get_owned(self, id: uuid.UUID, user_id: uuid.UUID) -> Optional[MediaItem]:
        q = select(MediaItem).where(MediaItem.id == id, MediaItem.user_id == user_id)
        res = await self.session.execute(q)
        return res.scalar_one_or_none()

    async def list_by_user(self, user_id: uuid.UUID) -> List[MediaItem]:
        q = select(MediaItem).where(MediaItem.user_id == user_id).order_by(col(MediaItem.created_at).desc())
        res = await self.session.execute(q)
        return list(res.scalars().all())

    async def list_owned_by_ids(self, ids: Sequence[uuid.UUID], user_id: uuid.UUID) -> List[MediaItem]:
        if not ids:
            return []
        q = select(MediaItem).where(col(MediaItem.id).in_(list(ids)), MediaItem.user_id == user_id)
        res = await self.session.execute(q)
        return list(res.scalars().all())

    async def delete(self, item: MediaItem) -> None:
        await self.session.execute(delete(SocialPostMedia).where(SocialPostMedia.media_id == item.id))
        await self.session.delete(item)
        await self._commit()
