# social_publisher/schemas/media_schema.py
from pydantic import BaseModel
from typing import Optional
import uuid
from datetime import datetime


class MediaRead(BaseModel):
    id: uuid.UUID
    file_name: str
    storage_url: str
    mime_type: str
    size_bytes: int
    alt_text: Optional[str]
    created_at: datetime
