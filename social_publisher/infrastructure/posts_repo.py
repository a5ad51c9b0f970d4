# social_publisher/infrastructure/posts_repo.py
from typing import Optional, List, Sequence, Iterable
from datetime import datetime
import uuid

import structlog
from sqlalchemy import and_, delete, func, or_, update
from sqlmodel import select, col

from social_publisher.infrastructure.database import Repository
from social_publisher.models.types import as_utc, utcnow
from social_publisher.models.media import MediaItem
from social_publisher.models.post import (
    PostStatus,
    PublishResult,
    SocialPost,
    SocialPostMedia,
    SocialPostTarget,
)
from social_publisher.models.social_account import SocialAccount

logger = structlog.get_logger(__name__)

QUEUE_OCCUPYING = [PostStatus.SCHEDULED, PostStatus.PUBLISHING, PostStatus.PUBLISHED]


def _due_clause(now: datetime):
    return or_(col(SocialPost.scheduled_at).is_(None), col(SocialPost.scheduled_at) <= now)


def _stale_clause(stale_before: datetime):
    return and_(
        SocialPost.status == PostStatus.PUBLISHING,
        or_(col(SocialPost.claimed_at).is_(None), col(SocialPost.claimed_at) <= stale_before),
    )


class PostsRepository(Repository):
    """Posts, their target/media links and per-account publish results."""

    async def create(self, post: SocialPost, account_ids: Sequence[uuid.UUID], media_ids: Sequence[uuid.UUID]) -> SocialPost:
        self.session.add(post)
        await self.session.flush()
        for account_id in account_ids:
            self.session.add(SocialPostTarget(post_id=post.id, account_id=account_id))
        for position, media_id in enumerate(media_ids):
            self.session.add(SocialPostMedia(post_id=post.id, media_id=media_id, position=position))
        await self._commit()
        await self.session.refresh(post)
        return post

    async def get_by_id(self, id: uuid.UUID) -> Optional[SocialPost]:
        # populate_existing: the claim UPDATE bypasses the identity map
        return await self.session.get(SocialPost, id, populate_existing=True)

    async def get_owned(self, id: uuid.UUID, user_id: uuid.UUID) -> Optional[SocialPost]:
        q = select(SocialPost).where(SocialPost.id == id, SocialPost.user_id == user_id).execution_options(populate_existing=True)
        res = await self.session.execute(q)
        return res.scalar_one_or_none()

    async def list_by_user(self, user_id: uuid.UUID, status: Optional[PostStatus] = None) -> List[SocialPost]:
        q = select(SocialPost).where(SocialPost.user_id == user_id)
        if status is not None:
            q = q.where(SocialPost.status == status)
        q = q.order_by(func.coalesce(SocialPost.scheduled_at, SocialPost.created_at))
        res = await self.session.execute(q)
        return list(res.scalars().all())

    async def save(self, post: SocialPost) -> SocialPost:
        post.updated_at = utcnow()
        self.session.add(post)
        await self._commit()
        return post

    async def replace_links(
        self,
        post: SocialPost,
        account_ids: Optional[Sequence[uuid.UUID]],
        media_ids: Optional[Sequence[uuid.UUID]],
        commit: bool = True,
    ) -> None:
        if account_ids is not None:
            await self.session.execute(delete(SocialPostTarget).where(SocialPostTarget.post_id == post.id))
            for account_id in account_ids:
                self.session.add(SocialPostTarget(post_id=post.id, account_id=account_id))
        if media_ids is not None:
            await self.session.execute(delete(SocialPostMedia).where(SocialPostMedia.post_id == post.id))
            for position, media_id in enumerate(media_ids):
                self.session.add(SocialPostMedia(post_id=post.id, media_id=media_id, position=position))
        if commit:
            await self._commit()
        else:
            await self.session.flush()

    async def transition(self, post_id: uuid.UUID, allowed: Iterable[PostStatus], **values) -> bool:
        """
        Update a post only while its status is still one of `allowed`.
        Returns False when a concurrent writer (usually a claim) moved it first.
        """
        values.setdefault("updated_at", utcnow())
        stmt = (
            update(SocialPost)
            .where(col(SocialPost.id) == post_id, col(SocialPost.status).in_(list(allowed)))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        res = await self.session.execute(stmt)
        if res.rowcount != 1:
            # also drops anything flushed alongside, e.g. replaced links
            await self.session.rollback()
            return False
        await self._commit()
        return True

    async def delete_unless(self, post: SocialPost, blocked: Iterable[PostStatus]) -> bool:
        """Delete the post and its rows in one transaction, unless its status is in `blocked`."""
        for model in (PublishResult, SocialPostTarget, SocialPostMedia):
            await self.session.execute(delete(model).where(model.post_id == post.id))
        res = await self.session.execute(
            delete(SocialPost)
            .where(col(SocialPost.id) == post.id, col(SocialPost.status).not_in(list(blocked)))
            .execution_options(synchronize_session=False)
        )
        if res.rowcount != 1:
            await self.session.rollback()
            return False
        await self._commit()
        self.session.expunge(post)
        return True

    # --- links ---
    async def list_target_ids(self, post_id: uuid.UUID) -> List[uuid.UUID]:
        q = select(SocialPostTarget.account_id).where(SocialPostTarget.post_id == post_id)
        res = await self.session.execute(q)
        return list(res.scalars().all())

    async def list_target_accounts(self, post_id: uuid.UUID) -> List[SocialAccount]:
        q = (
            select(SocialAccount)
            .join(SocialPostTarget, SocialPostTarget.account_id == SocialAccount.id)
            .where(SocialPostTarget.post_id == post_id)
            .order_by(SocialAccount.created_at)
            .execution_options(populate_existing=True)
        )
        res = await self.session.execute(q)
        return list(res.scalars().all())

    async def list_media(self, post_id: uuid.UUID) -> List[MediaItem]:
        q = (
            select(MediaItem)
            .join(SocialPostMedia, SocialPostMedia.media_id == MediaItem.id)
            .where(SocialPostMedia.post_id == post_id)
            .order_by(SocialPostMedia.position)
        )
        res = await self.session.execute(q)
        return list(res.scalars().all())

    async def copy_links(self, source_id: uuid.UUID, target: SocialPost) -> None:
        for account_id in await self.list_target_ids(source_id):
            self.session.add(SocialPostTarget(post_id=target.id, account_id=account_id))
        for position, media in enumerate(await self.list_media(source_id)):
            self.session.add(SocialPostMedia(post_id=target.id, media_id=media.id, position=position))
        await self._commit()

    # --- results ---
    async def list_results(self, post_id: uuid.UUID) -> List[PublishResult]:
        q = select(PublishResult).where(PublishResult.post_id == post_id).execution_options(populate_existing=True)
        res = await self.session.execute(q)
        return list(res.scalars().all())

    async def get_result(self, post_id: uuid.UUID, account_id: uuid.UUID) -> Optional[PublishResult]:
        q = (
            select(PublishResult)
            .where(PublishResult.post_id == post_id, PublishResult.account_id == account_id)
            .execution_options(populate_existing=True)
        )
        res = await self.session.execute(q)
        return res.scalar_one_or_none()

    async def save_result(self, result: PublishResult) -> PublishResult:
        self.session.add(result)
        await self._commit()
        return result

    # --- scheduling ---
    async def select_due_ids(self, now: datetime, stale_before: datetime, limit: int) -> List[uuid.UUID]:
        """Due scheduled posts plus stale claims, oldest due first."""
        now, stale_before = as_utc(now), as_utc(stale_before)
        due = and_(SocialPost.status == PostStatus.SCHEDULED, _due_clause(now))
        q = (
            select(SocialPost.id)
            .where(or_(due, _stale_clause(stale_before)))
            .order_by(func.coalesce(SocialPost.scheduled_at, SocialPost.created_at), SocialPost.created_at)
            .limit(limit)
        )
        res = await self.session.execute(q)
        return list(res.scalars().all())

    async def claim(
        self,
        post_id: uuid.UUID,
        now: datetime,
        stale_before: datetime,
        claimable: Iterable[PostStatus] = (PostStatus.SCHEDULED,),
        due_only: bool = True,
    ) -> bool:
        """
        Conditionally move a post to `publishing` in a single row update.
        Only one caller can win; the loser sees a row count of zero.
        """
        now, stale_before = as_utc(now), as_utc(stale_before)
        fresh = col(SocialPost.status).in_(list(claimable))
        if due_only:
            fresh = and_(fresh, _due_clause(now))
        stmt = (
            update(SocialPost)
            .where(col(SocialPost.id) == post_id, or_(fresh, _stale_clause(stale_before)))
            .values(status=PostStatus.PUBLISHING, claimed_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        res = await self.session.execute(stmt)
        await self._commit()
        claimed = res.rowcount == 1
        logger.debug("post_claim_attempt", post_id=str(post_id), claimed=claimed)
        return claimed

    # --- queue ---
    async def list_occupied_times(
        self,
        user_id: uuid.UUID,
        start: datetime,
        end: datetime,
        statuses: Iterable[PostStatus] = QUEUE_OCCUPYING,
        exclude_id: Optional[uuid.UUID] = None,
    ) -> List[datetime]:
        """Times already taken by the user's posts in `statuses` between start and end."""
        q = select(SocialPost.scheduled_at).where(
            SocialPost.user_id == user_id,
            col(SocialPost.status).in_(list(statuses)),
            col(SocialPost.scheduled_at) >= as_utc(start),
            col(SocialPost.scheduled_at) <= as_utc(end),
        )
        if exclude_id is not None:
            q = q.where(SocialPost.id != exclude_id)
        res = await self.session.execute(q)
        return [t for t in res.scalars().all() if t is not None]

    async def list_queued(self, user_id: uuid.UUID) -> List[SocialPost]:
        """Scheduled posts in queue order; posts never ordered explicitly go last by time."""
        q = (
            select(SocialPost)
            .where(SocialPost.user_id == user_id, SocialPost.status == PostStatus.SCHEDULED)
            .order_by(
                col(SocialPost.queue_position).is_(None),
                SocialPost.queue_position,
                func.coalesce(SocialPost.scheduled_at, SocialPost.created_at),
            )
            .execution_options(populate_existing=True)
        )
        res = await self.session.execute(q)
        return list(res.scalars().all())

    async def next_queue_position(self, user_id: uuid.UUID) -> int:
        q = select(func.max(SocialPost.queue_position)).where(SocialPost.user_id == user_id)
        res = await self.session.execute(q)
        current = res.scalar_one_or_none()
        return 0 if current is None else current + 1

    async def list_target_platforms(self, post_id: uuid.UUID) -> List[str]:
        q = (
            select(SocialAccount.platform)
            .join(SocialPostTarget, SocialPostTarget.account_id == SocialAccount.id)
            .where(SocialPostTarget.post_id == post_id)
            .distinct()
        )
        res = await self.session.execute(q)
        return sorted(res.scalars().all())
