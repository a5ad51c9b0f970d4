# social_publisher/services/post_service.py
from typing import Dict, List, Optional, Sequence
import uuid

import structlog
from sqlmodel.ext.asyncio.session import AsyncSession

from social_publisher.errors import AuthorizationError, ConflictError, ValidationError
from social_publisher.infrastructure.accounts_repo import AccountsRepository
from social_publisher.infrastructure.media_repo import MediaRepository
from social_publisher.infrastructure.posts_repo import PostsRepository
from social_publisher.models.post import PostStatus, SocialPost
from social_publisher.models.social_account import SocialAccount
from social_publisher.models.types import as_utc
from social_publisher.platforms.registry import adapter_class, parse_platform
from social_publisher.schemas.post_schema import PostCreate, PostRead, PostUpdate, ScheduleCreate
from social_publisher.services.publisher import result_view, text_for

logger = structlog.get_logger(__name__)

EDITABLE = (PostStatus.DRAFT, PostStatus.SCHEDULED)


class PostService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.posts = PostsRepository(session)
        self.accounts = AccountsRepository(session)
        self.media = MediaRepository(session)

    async def _owned_accounts(self, user_id: uuid.UUID, account_ids: Sequence[uuid.UUID]) -> List[SocialAccount]:
        unique = list(dict.fromkeys(account_ids))
        accounts = await self.accounts.list_owned_by_ids(unique, user_id)
        if len(accounts) != len(unique):
            raise ValidationError("unknown account in targets")
        return accounts

    async def _check_media(self, user_id: uuid.UUID, media_ids: Sequence[uuid.UUID]) -> List[uuid.UUID]:
        unique = list(dict.fromkeys(media_ids))
        found = await self.media.list_owned_by_ids(unique, user_id)
        if len(found) != len(unique):
            raise ValidationError("unknown media item")
        return unique

    @staticmethod
    def _check_variants(variants: Dict[str, str]) -> Dict[str, str]:
        for platform in variants:
            parse_platform(platform)
        return dict(variants)

    @staticmethod
    def _check_lengths(post: SocialPost, accounts: List[SocialAccount]) -> None:
        for platform in {a.platform for a in accounts}:
            cls = adapter_class(platform)
            if not cls.truncates_text and len(text_for(post, platform)) > cls.max_text_length:
                raise ValidationError(f"content too long for {platform} (max {cls.max_text_length})")

    async def to_read(self, post: SocialPost) -> PostRead:
        return PostRead(
            id=post.id,
            content=post.content,
            content_variants=post.content_variants or {},
            account_ids=await self.posts.list_target_ids(post.id),
            media_ids=[m.id for m in await self.posts.list_media(post.id)],
            scheduled_at=post.scheduled_at,
            status=post.status,
            published_at=post.published_at,
            evergreen_interval_days=post.evergreen_interval_days,
            recycle_count=post.recycle_count,
            queue_position=post.queue_position,
            created_at=post.created_at,
            results=[result_view(r) for r in await self.posts.list_results(post.id)],
        )

    async def _get_owned(self, post_id: uuid.UUID, user_id: uuid.UUID) -> SocialPost:
        post = await self.posts.get_owned(post_id, user_id)
        if post is None:
            raise AuthorizationError("post not found")
        return post

    async def create_post(self, user_id: uuid.UUID, payload: PostCreate) -> PostRead:
        if not payload.content.strip():
            raise ValidationError("content is required")
        accounts = await self._owned_accounts(user_id, payload.account_ids)
        media_ids = await self._check_media(user_id, payload.media_ids)

        post = SocialPost(
            user_id=user_id,
            content=payload.content,
            content_variants=self._check_variants(payload.content_variants),
            scheduled_at=as_utc(payload.scheduled_at),
            status=PostStatus.DRAFT if payload.draft else PostStatus.SCHEDULED,
            evergreen_interval_days=payload.evergreen_interval_days,
        )
        self._check_lengths(post, accounts)
        post = await self.posts.create(post, [a.id for a in accounts], media_ids)
        logger.info("post_created", post_id=str(post.id), user_id=str(user_id), status=post.status.value, targets=len(accounts))
        return await self.to_read(post)

    async def list_posts(self, user_id: uuid.UUID, status: Optional[PostStatus] = None) -> List[PostRead]:
        return [await self.to_read(p) for p in await self.posts.list_by_user(user_id, status)]

    async def get_post(self, post_id: uuid.UUID, user_id: uuid.UUID) -> PostRead:
        return await self.to_read(await self._get_owned(post_id, user_id))

    async def update_post(self, post_id: uuid.UUID, user_id: uuid.UUID, payload: PostUpdate) -> PostRead:
        post = await self._get_owned(post_id, user_id)
        if post.status not in EDITABLE:
            raise ConflictError(f"post is {post.status.value} and can no longer be edited")

        changes = payload.model_dump(exclude_unset=True)
        values = {}
        if "content" in changes:
            if not (payload.content or "").strip():
                raise ValidationError("content is required")
            values["content"] = post.content = payload.content
        if "content_variants" in changes:
            values["content_variants"] = post.content_variants = self._check_variants(payload.content_variants or {})
        if "scheduled_at" in changes:
            values["scheduled_at"] = as_utc(payload.scheduled_at)
        if "evergreen_interval_days" in changes:
            values["evergreen_interval_days"] = payload.evergreen_interval_days

        account_ids = media_ids = None
        if payload.account_ids is not None:
            accounts = await self._owned_accounts(user_id, payload.account_ids)
            account_ids = [a.id for a in accounts]
        else:
            accounts = await self.posts.list_target_accounts(post.id)
        if payload.media_ids is not None:
            media_ids = await self._check_media(user_id, payload.media_ids)
        self._check_lengths(post, accounts)

        await self.posts.replace_links(post, account_ids, media_ids, commit=False)
        if not await self.posts.transition(post_id, EDITABLE, **values):
            raise ConflictError("post was claimed for publishing and can no longer be edited")
        logger.info("post_updated", post_id=str(post_id), fields=sorted(changes))
        return await self.to_read(await self.posts.get_by_id(post_id))

    async def schedule_post(self, post_id: uuid.UUID, user_id: uuid.UUID, payload: ScheduleCreate) -> PostRead:
        post = await self._get_owned(post_id, user_id)
        if post.status not in EDITABLE:
            raise ConflictError(f"post is {post.status.value} and cannot be scheduled")
        scheduled_at = as_utc(payload.scheduled_at)
        if not await self.posts.transition(post_id, EDITABLE, status=PostStatus.SCHEDULED, scheduled_at=scheduled_at):
            raise ConflictError("post was claimed for publishing and cannot be scheduled")
        logger.info("post_scheduled", post_id=str(post_id), scheduled_at=scheduled_at.isoformat() if scheduled_at else None)
        return await self.to_read(await self.posts.get_by_id(post_id))

    async def delete_post(self, post_id: uuid.UUID, user_id: uuid.UUID) -> None:
        post = await self._get_owned(post_id, user_id)
        if post.status == PostStatus.PUBLISHING:
            raise ConflictError("post is being published")
        if not await self.posts.delete_unless(post, [PostStatus.PUBLISHING]):
            raise ConflictError("post is being published")
        logger.info("post_deleted", post_id=str(post_id), user_id=str(user_id))
