# social_publisher/schemas/queue_schema.py
from pydantic import BaseModel, Field
from typing import List, Optional
import uuid
from datetime import datetime

from social_publisher.platforms.base import Platform

TIME_SLOT_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


class QueueSlotCreate(BaseModel):
    day_of_week: int = Field(ge=0, le=6)  # 0 = Monday
    time_slot: str = Field(pattern=TIME_SLOT_PATTERN)  # HH:MM, UTC
    platforms: List[Platform] = Field(min_length=1)


class QueueSlotUpdate(BaseModel):
    platforms: Optional[List[Platform]] = Field(default=None, min_length=1)
    is_active: Optional[bool] = None


class QueueSlotRead(BaseModel):
    id: uuid.UUID
    day_of_week: int
    time_slot: str
    platforms: List[str]
    is_active: bool
    created_at: datetime


class QueueOrder(BaseModel):
    post_ids: List[uuid.UUID] = Field(min_length=1)


class QueueStats(BaseModel):
    total_scheduled: int
    next_post_at: Optional[datetime] = None
    active_slots: int
    empty_slots: int  # free slot occurrences over the next 7 days
