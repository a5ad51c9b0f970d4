# social_publisher/services/media_service.py
from typing import List, Optional
import re
import uuid

import structlog
from sqlmodel.ext.asyncio.session import AsyncSession

from social_publisher import config
from social_publisher.errors import AuthorizationError, ValidationError
from social_publisher.infrastructure.media_repo import MediaRepository
from social_publisher.infrastructure.media_storage import MediaStorage
from social_publisher.models.media import MediaItem
from social_publisher.schemas.media_schema import MediaRead

logger = structlog.get_logger(__name__)

ALLOWED_MIME_PREFIXES = ("image/", "video/")


def safe_file_name(name: Optional[str]) -> str:
    cleaned = re.sub(r"[^A-Za-z0-9._-]", "_", (name or "").rsplit("/", 1)[-1]).strip("._")
    return cleaned or "upload"


def to_read(item: MediaItem) -> MediaRead:
    return MediaRead(
        id=item.id,
        file_name=item.file_name,
        storage_url=item.storage_url,
        mime_type=item.mime_type,
        size_bytes=item.size_bytes,
        alt_text=item.alt_text,
        created_at=item.created_at,
    )


class MediaService:
    def __init__(self, session: AsyncSession, storage: MediaStorage, max_bytes: int = config.MAX_MEDIA_BYTES):
        self.repo = MediaRepository(session)
        self.storage = storage
        self.max_bytes = max_bytes

    async def upload(
        self,
        user_id: uuid.UUID,
        file_name: Optional[str],
        content_type: Optional[str],
        data: bytes,
        alt_text: Optional[str] = None,
    ) -> MediaRead:
        content_type = (content_type or "").lower()
        if not content_type.startswith(ALLOWED_MIME_PREFIXES):
            raise ValidationError(f"unsupported media type: {content_type or 'unknown'}")
        if not data:
            raise ValidationError("empty file")
        if len(data) > self.max_bytes:
            raise ValidationError(f"file exceeds {self.max_bytes} bytes")

        name = safe_file_name(file_name)
        key = f"{user_id}/{uuid.uuid4().hex}-{name}"
        stored = await self.storage.upload(key, data, content_type)
        item = await self.repo.create(
            MediaItem(
                user_id=user_id,
                file_name=name,
                storage_key=stored.key,
                storage_url=stored.url,
                mime_type=content_type,
                size_bytes=len(data),
                alt_text=alt_text,
            )
        )
        logger.info("media_created", media_id=str(item.id), user_id=str(user_id), mime_type=content_type, size=len(data))
        return to_read(item)

    async def list_media(self, user_id: uuid.UUID) -> List[MediaRead]:
        return [to_read(i) for i in await self.repo.list_by_user(user_id)]

    async def delete(self, media_id: uuid.UUID, user_id: uuid.UUID) -> None:
        item = await self.repo.get_owned(media_id, user_id)
        if item is None:
            raise AuthorizationError("media not found")
        await self.storage.delete(item.storage_key)
        await self.repo.delete(item)
        logger.info("media_removed", media_id=str(media_id), user_id=str(user_id))
