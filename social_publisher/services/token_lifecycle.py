# social_publisher/services/token_lifecycle.py
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

import structlog

from social_publisher import config
from social_publisher.errors import PlatformError
from social_publisher.infrastructure.accounts_repo import AccountsRepository
from social_publisher.models.social_account import SocialAccount
from social_publisher.models.types import as_utc, utcnow
from social_publisher.platforms.base import PlatformAdapter

logger = structlog.get_logger(__name__)


class TokenState(str, Enum):
    VALID = "valid"
    NEEDS_REFRESH = "needs_refresh"
    EXPIRED = "expired"
    REVOKED = "revoked"


def token_state(
    account: SocialAccount,
    now: Optional[datetime] = None,
    refresh_window: int = config.TOKEN_REFRESH_WINDOW_SECONDS,
) -> TokenState:
    if not account.is_active:
        return TokenState.REVOKED
    if account.token_expires_at is None:
        return TokenState.VALID
    now = as_utc(now or utcnow())
    expires_at = as_utc(account.token_expires_at)
    if expires_at <= now:
        return TokenState.EXPIRED
    if expires_at - now <= timedelta(seconds=refresh_window):
        return TokenState.NEEDS_REFRESH
    return TokenState.VALID


async def ensure_fresh_token(
    account: SocialAccount,
    adapter: PlatformAdapter,
    accounts: AccountsRepository,
    now: Optional[datetime] = None,
) -> SocialAccount:
    """
    Drive the account through valid -> needs_refresh -> expired -> revoked
    before a publish call. Raises PlatformError when it cannot be used.
    """
    state = token_state(account, now)
    if state == TokenState.VALID:
        return account
    if state == TokenState.REVOKED:
        raise PlatformError("account_inactive", revoked=True)

    if not adapter.can_refresh(account):
        if state == TokenState.NEEDS_REFRESH:
            return account
        raise PlatformError("token_expired", revoked=True)

    try:
        tokens = await adapter.refresh_token(account)
    except PlatformError as exc:
        if exc.transient and state == TokenState.NEEDS_REFRESH:
            logger.warning("token_refresh_deferred", account_id=str(account.id), reason=exc.reason)
            return account
        raise

    if tokens is None:
        if state == TokenState.NEEDS_REFRESH:
            return account
        raise PlatformError("token_expired", revoked=True)

    logger.info("token_refreshed", account_id=str(account.id), platform=account.platform)
    return await accounts.update_tokens(account, tokens.access_token_enc, tokens.refresh_token_enc, tokens.expires_at)
