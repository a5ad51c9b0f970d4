# social_publisher/schemas/post_schema.py
from pydantic import BaseModel, Field
from typing import Dict, List, Optional
import uuid
from datetime import datetime

from social_publisher.models.post import PostStatus, ResultStatus, FailureKind


class PostCreate(BaseModel):
    content: str
    account_ids: List[uuid.UUID] = Field(default_factory=list)
    media_ids: List[uuid.UUID] = Field(default_factory=list)  # order is kept
    content_variants: Dict[str, str] = Field(default_factory=dict)
    scheduled_at: Optional[datetime] = None  # omitted: publish on the next scheduler pass
    draft: bool = False
    evergreen_interval_days: Optional[int] = Field(default=None, ge=1)


class PostUpdate(BaseModel):
    content: Optional[str] = None
    account_ids: Optional[List[uuid.UUID]] = None
    media_ids: Optional[List[uuid.UUID]] = None
    content_variants: Optional[Dict[str, str]] = None
    scheduled_at: Optional[datetime] = None
    evergreen_interval_days: Optional[int] = Field(default=None, ge=1)


class ScheduleCreate(BaseModel):
    scheduled_at: Optional[datetime] = None


class PublishResultRead(BaseModel):
    account_id: uuid.UUID
    platform: str
    status: ResultStatus
    platform_post_id: Optional[str] = None
    platform_post_url: Optional[str] = None
    error_message: Optional[str] = None
    reason_code: Optional[str] = None
    failure_kind: Optional[FailureKind] = None
    attempt_count: int = 0
    last_attempted_at: Optional[datetime] = None


class PostRead(BaseModel):
    id: uuid.UUID
    content: str
    content_variants: Dict[str, str]
    account_ids: List[uuid.UUID]
    media_ids: List[uuid.UUID]
    scheduled_at: Optional[datetime]
    status: PostStatus
    published_at: Optional[datetime]
    evergreen_interval_days: Optional[int]
    recycle_count: int
    queue_position: Optional[int] = None
    created_at: datetime
    results: List[PublishResultRead] = Field(default_factory=list)


class PublishOutcome(BaseModel):
    post_id: uuid.UUID
    status: PostStatus
    results: List[PublishResultRead]


class RetractFailure(BaseModel):
    account_id: uuid.UUID
    reason_code: str
    error_message: str


class RetractOutcome(BaseModel):
    post_id: uuid.UUID
    retracted: List[uuid.UUID] = Field(default_factory=list)
    failed: List[RetractFailure] = Field(default_factory=list)
