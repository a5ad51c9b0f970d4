# social_publisher/models/post.py
from sqlmodel import SQLModel, Field, Column
from typing import Optional
from datetime import datetime
from enum import Enum
import uuid
from sqlalchemy import JSON, UniqueConstraint

from social_publisher.models.types import UTCDateTime, utcnow


class PostStatus(str, Enum):
    DRAFT = "draft"
    SCHEDULED = "scheduled"
    PUBLISHING = "publishing"
    PUBLISHED = "published"
    PARTIALLY_FAILED = "partially_failed"
    FAILED = "failed"


class ResultStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"
    RETRACTED = "retracted"  # published, then deleted from the platform


class FailureKind(str, Enum):
    TRANSIENT = "transient"
    PERMANENT = "permanent"


class SocialPost(SQLModel, table=True):
    __tablename__ = "social_post"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    user_id: uuid.UUID = Field(foreign_key="user.id", index=True)
    content: str
    content_variants: dict = Field(sa_column=Column(JSON), default={})  # platform -> text
    scheduled_at: Optional[datetime] = Field(default=None, sa_type=UTCDateTime, index=True)  # None: publish on next pass
    status: PostStatus = Field(default=PostStatus.DRAFT, index=True)
    claimed_at: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)
    published_at: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)
    evergreen_interval_days: Optional[int] = Field(default=None)
    recycle_count: int = Field(default=0)
    queue_position: Optional[int] = Field(default=None)  # order inside the slot queue
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


class SocialPostTarget(SQLModel, table=True):
    __tablename__ = "social_post_target"

    post_id: uuid.UUID = Field(foreign_key="social_post.id", primary_key=True)
    account_id: uuid.UUID = Field(foreign_key="social_account.id", primary_key=True, index=True)


class SocialPostMedia(SQLModel, table=True):
    __tablename__ = "social_post_media"

    post_id: uuid.UUID = Field(foreign_key="social_post.id", primary_key=True)
    media_id: uuid.UUID = Field(foreign_key="media_item.id", primary_key=True, index=True)
    position: int = Field(default=0)


class PublishResult(SQLModel, table=True):
    __tablename__ = "publish_result"
    __table_args__ = (UniqueConstraint("post_id", "account_id", name="uq_publish_result_post_account"),)

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    post_id: uuid.UUID = Field(foreign_key="social_post.id", index=True)
    account_id: uuid.UUID = Field(foreign_key="social_account.id", index=True)
    platform: str
    status: ResultStatus = Field(default=ResultStatus.PENDING)
    platform_post_id: Optional[str] = None
    platform_post_url: Optional[str] = None
    error_message: Optional[str] = None  # generic, user-facing
    reason_code: Optional[str] = None
    failure_kind: Optional[FailureKind] = None
    attempt_count: int = Field(default=0)
    last_attempted_at: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


class QueueSlot(SQLModel, table=True):
    """A weekly publishing slot; queued posts are spread over the user's active slots."""

    __tablename__ = "social_queue_slot"
    __table_args__ = (UniqueConstraint("user_id", "day_of_week", "time_slot", name="uq_queue_slot_user_time"),)

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    user_id: uuid.UUID = Field(foreign_key="user.id", index=True)
    day_of_week: int  # 0 = Monday, as datetime.weekday()
    time_slot: str  # "HH:MM", UTC
    platforms: list = Field(sa_column=Column(JSON), default=[])
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
