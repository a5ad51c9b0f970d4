# social_publisher/infrastructure/accounts_repo.py
from typing import Optional, List, Sequence, Tuple
from sqlalchemy import delete
from sqlmodel import select, col
from datetime import datetime
import uuid

from social_publisher.infrastructure.database import Repository
from social_publisher.models.types import utcnow
from social_publisher.models.social_account import SocialAccount
from social_publisher.models.post import PublishResult, SocialPostTarget


class AccountsRepository(Repository):
    """Repository for SocialAccount entity."""

    async def get_by_id(self, id: uuid.UUID) -> Optional[SocialAccount]:
        q = select(SocialAccount).where(SocialAccount.id == id)
        res = await self.session.execute(q)
        return res.scalar_one_or_none()

    async def get_owned(self, id: uuid.UUID, user_id: uuid.UUID) -> Optional[SocialAccount]:
        q = select(SocialAccount).where(SocialAccount.id == id, SocialAccount.user_id == user_id)
        res = await self.session.execute(q)
        return res.scalar_one_or_none()

    async def get_by_owner_and_platform_user(self, user_id: uuid.UUID, platform: str, platform_user_id: str) -> Optional[SocialAccount]:
        q = select(SocialAccount).where(
            SocialAccount.user_id == user_id,
            SocialAccount.platform == platform,
            SocialAccount.platform_user_id == platform_user_id,
        )
        res = await self.session.execute(q)
        return res.scalar_one_or_none()

    async def list_by_user(self, user_id: uuid.UUID) -> List[SocialAccount]:
        q = select(SocialAccount).where(SocialAccount.user_id == user_id).order_by(SocialAccount.created_at)
        res = await self.session.execute(q)
        return list(res.scalars().all())

    async def list_owned_by_ids(self, ids: Sequence[uuid.UUID], user_id: uuid.UUID) -> List[SocialAccount]:
        if not ids:
            return []
        q = select(SocialAccount).where(col(SocialAccount.id).in_(list(ids)), SocialAccount.user_id == user_id)
        res = await self.session.execute(q)
        return list(res.scalars().all())

    async def upsert_connection(
        self,
        user_id: uuid.UUID,
        platform: str,
        platform_user_id: str,
        access_token_enc: str,
        refresh_token_enc: Optional[str],
        expires_at: Optional[datetime],
        username: Optional[str] = None,
        display_name: Optional[str] = None,
        avatar_url: Optional[str] = None,
    ) -> Tuple[SocialAccount, bool]:
        """
        Insert or overwrite the account keyed by (user, platform, platform user id).
        Reconnects rotate the tokens and re-activate the account.
        Returns (account, created).
        """
        account = await self.get_by_owner_and_platform_user(user_id, platform, platform_user_id)
        created = account is None
        if created:
            account = SocialAccount(user_id=user_id, platform=platform, platform_user_id=platform_user_id, access_token_enc=access_token_enc)
        account.access_token_enc = access_token_enc
        account.refresh_token_enc = refresh_token_enc
        account.token_expires_at = expires_at
        account.username = username
        account.display_name = display_name
        account.avatar_url = avatar_url
        account.is_active = True
        account.last_error = None
        account.updated_at = utcnow()
        self.session.add(account)
        await self._commit()
        await self.session.refresh(account)
        return account, created

    async def update_tokens(
        self,
        account: SocialAccount,
        access_token_enc: str,
        refresh_token_enc: Optional[str],
        expires_at: Optional[datetime],
    ) -> SocialAccount:
        account.access_token_enc = access_token_enc
        # platforms that do not rotate refresh tokens omit them on refresh
        if refresh_token_enc is not None:
            account.refresh_token_enc = refresh_token_enc
        account.token_expires_at = expires_at
        account.updated_at = utcnow()
        self.session.add(account)
        await self._commit()
        return account

    async def mark_inactive(self, account: SocialAccount, reason: str) -> SocialAccount:
        account.is_active = False
        account.last_error = reason
        account.updated_at = utcnow()
        self.session.add(account)
        await self._commit()
        return account

    async def delete_with_results(self, account: SocialAccount) -> None:
        """
        Delete the account together with its publish results and post-target links.
        Posts and their other targets are left alone.
        """
        await self.session.execute(delete(PublishResult).where(PublishResult.account_id == account.id))
        await self.session.execute(delete(SocialPostTarget).where(SocialPostTarget.account_id == account.id))
        await self.session.delete(account)
        await self._commit()
