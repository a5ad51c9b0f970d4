# social_publisher/services/connection_service.py
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional
import uuid

import structlog
from sqlmodel.ext.asyncio.session import AsyncSession

from social_publisher import security
from social_publisher.errors import AuthorizationError, OAuthStateError, ValidationError
from social_publisher.infrastructure.accounts_repo import AccountsRepository
from social_publisher.models.social_account import SocialAccount
from social_publisher.platforms.base import PlatformAdapter
from social_publisher.platforms.registry import get_adapter
from social_publisher.schemas.account_schema import AccountRead

logger = structlog.get_logger(__name__)


@dataclass
class ConnectionStart:
    auth_url: str
    handshake: security.HandshakeSecret
    sealed: str  # value for the short-lived cookie


class ConnectionManager:
    """OAuth connect/callback orchestration and the lifecycle of stored accounts."""

    def __init__(
        self,
        session: AsyncSession,
        state_store,
        adapter_factory: Callable[[str], PlatformAdapter] = get_adapter,
    ):
        self.session = session
        self.repo = AccountsRepository(session)
        self.state_store = state_store
        self.adapter_factory = adapter_factory

    def initiate_connection(self, user_id: uuid.UUID, platform: str, now: Optional[datetime] = None) -> ConnectionStart:
        adapter = self.adapter_factory(platform)
        handshake, pkce = security.new_handshake(str(user_id), platform, adapter.requires_pkce, now=now)
        auth_url = adapter.build_auth_url(handshake.state, pkce.challenge if pkce else None)
        logger.info("oauth_initiated", user_id=str(user_id), platform=platform, pkce=pkce is not None)
        return ConnectionStart(auth_url=auth_url, handshake=handshake, sealed=security.seal_handshake(handshake))

    async def complete_connection(
        self,
        platform: str,
        code: Optional[str],
        received_state: Optional[str],
        handshake: Optional[security.HandshakeSecret],
        now: Optional[datetime] = None,
    ) -> SocialAccount:
        """
        Validate the handshake (no network before this passes), burn it, then
        exchange the code and upsert the account.
        """
        adapter = self.adapter_factory(platform)
        if handshake is None:
            raise OAuthStateError("missing handshake")
        if handshake.is_expired(now):
            logger.info("oauth_state_expired", platform=platform, user_id=handshake.user_id)
            raise OAuthStateError("handshake expired")
        if handshake.platform != platform:
            raise OAuthStateError("handshake bound to another platform")
        if not security.verify_state(received_state, handshake.state):
            logger.warning("oauth_state_mismatch", platform=platform, user_id=handshake.user_id)
            raise OAuthStateError("state mismatch")
        if adapter.requires_pkce and not handshake.code_verifier:
            raise OAuthStateError("missing code verifier")

        # single use, whether or not the exchange below succeeds
        if not await security.consume_state(self.state_store, handshake.state):
            logger.warning("oauth_state_replayed", platform=platform, user_id=handshake.user_id)
            raise OAuthStateError("state already used")

        if not code:
            raise ValidationError("missing authorization code")

        tokens = await adapter.exchange_code(code, handshake.code_verifier)
        profile = await adapter.get_profile(tokens.access_token_enc)
        account, created = await self.repo.upsert_connection(
            user_id=uuid.UUID(handshake.user_id),
            platform=platform,
            platform_user_id=profile.platform_user_id,
            access_token_enc=tokens.access_token_enc,
            refresh_token_enc=tokens.refresh_token_enc,
            expires_at=tokens.expires_at,
            username=profile.username,
            display_name=profile.display_name,
            avatar_url=profile.avatar_url,
        )
        logger.info(
            "account_connected",
            account_id=str(account.id),
            user_id=handshake.user_id,
            platform=platform,
            created=created,
        )
        return account

    async def list_accounts(self, user_id: uuid.UUID) -> List[AccountRead]:
        return [AccountRead.from_account(a) for a in await self.repo.list_by_user(user_id)]

    async def get_account(self, account_id: uuid.UUID, user_id: uuid.UUID) -> AccountRead:
        account = await self.repo.get_owned(account_id, user_id)
        if account is None:
            raise AuthorizationError("account not found")
        return AccountRead.from_account(account)

    async def disconnect(self, account_id: uuid.UUID, user_id: uuid.UUID) -> None:
        account = await self.repo.get_owned(account_id, user_id)
        if account is None:
            logger.info("disconnect_denied", account_id=str(account_id), user_id=str(user_id))
            raise AuthorizationError("account not found")
        await self.repo.delete_with_results(account)
        logger.info("account_disconnected", account_id=str(account_id), user_id=str(user_id), platform=account.platform)

    async def validate_account(self, account_id: uuid.UUID, user_id: uuid.UUID) -> AccountRead:
        """Check the stored token against the platform; a rejected token deactivates the account."""
        account = await self.repo.get_owned(account_id, user_id)
        if account is None:
            raise AuthorizationError("account not found")
        adapter = self.adapter_factory(account.platform)
        valid = await adapter.validate_token(account)
        if not valid and account.is_active:
            account = await self.repo.mark_inactive(account, "token_revoked")
        logger.info("account_validated", account_id=str(account_id), platform=account.platform, valid=valid)
        return AccountRead.from_account(account)
