# social_publisher/schemas/account_schema.py
from pydantic import BaseModel
from typing import Optional
import uuid
from datetime import datetime

from social_publisher.models.social_account import SocialAccount

REDACTED = "[REDACTED]"


class AccountRead(BaseModel):
    id: uuid.UUID
    platform: str
    platform_user_id: str
    username: Optional[str]
    display_name: Optional[str]
    avatar_url: Optional[str]
    access_token: str = REDACTED
    refresh_token: Optional[str] = None
    token_expires_at: Optional[datetime]
    is_active: bool
    last_error: Optional[str]
    created_at: datetime

    @classmethod
    def from_account(cls, account: SocialAccount) -> "AccountRead":
        return cls(
            id=account.id,
            platform=account.platform,
            platform_user_id=account.platform_user_id,
            username=account.username,
            display_name=account.display_name,
            avatar_url=account.avatar_url,
            access_token=REDACTED,
            refresh_token=REDACTED if account.refresh_token_enc else None,
            token_expires_at=account.token_expires_at,
            is_active=account.is_active,
            last_error=account.last_error,
            created_at=account.created_at,
        )
