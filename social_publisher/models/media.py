# social_publisher/models/media.py
from sqlmodel import SQLModel, Field
from typing import Optional
from datetime import datetime
import uuid

from social_publisher.models.types import UTCDateTime, utcnow


class MediaItem(SQLModel, table=True):
    __tablename__ = "media_item"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    user_id: uuid.UUID = Field(foreign_key="user.id", index=True)
    file_name: str
    storage_key: str
    storage_url: str
    mime_type: str
    size_bytes: int
    alt_text: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
