# social_publisher/models/social_account.py
from sqlmodel import SQLModel, Field, Column
from typing import Optional
from datetime import datetime
import uuid
from sqlalchemy import String, UniqueConstraint

from social_publisher.models.types import UTCDateTime, utcnow


class SocialAccount(SQLModel, table=True):
    __tablename__ = "social_account"
    __table_args__ = (
        UniqueConstraint("user_id", "platform", "platform_user_id", name="uq_social_account_owner_platform_user"),
    )

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    user_id: uuid.UUID = Field(foreign_key="user.id", index=True)
    platform: str = Field(sa_column=Column(String, index=True, nullable=False))
    platform_user_id: str
    username: Optional[str] = None
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None
    # Fernet ciphertext; plaintext only lives inside adapter calls
    access_token_enc: str
    refresh_token_enc: Optional[str] = None
    token_expires_at: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)
    is_active: bool = Field(default=True)
    last_error: Optional[str] = None  # reason code of the last credential failure
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
