# social_publisher/services/publisher.py
from datetime import datetime, timedelta
from typing import Callable, Iterable, List, Optional
import uuid

import structlog
from sqlmodel.ext.asyncio.session import AsyncSession

from social_publisher import config
from social_publisher.errors import AuthorizationError, ConflictError, PlatformError, PUBLIC_MESSAGES
from social_publisher.infrastructure.accounts_repo import AccountsRepository
from social_publisher.infrastructure.posts_repo import PostsRepository
from social_publisher.models.media import MediaItem
from social_publisher.models.post import (
    FailureKind,
    PostStatus,
    PublishResult,
    ResultStatus,
    SocialPost,
)
from social_publisher.models.social_account import SocialAccount
from social_publisher.models.types import utcnow
from social_publisher.platforms.base import PlatformAdapter
from social_publisher.platforms.registry import get_adapter
from social_publisher.schemas.post_schema import PublishOutcome, PublishResultRead, RetractFailure, RetractOutcome
from social_publisher.services.token_lifecycle import ensure_fresh_token

logger = structlog.get_logger(__name__)

MANUALLY_CLAIMABLE = (PostStatus.DRAFT, PostStatus.SCHEDULED, PostStatus.PARTIALLY_FAILED, PostStatus.FAILED)


def compute_post_status(target_ids: Iterable[uuid.UUID], results: Iterable[PublishResult]) -> PostStatus:
    """Aggregate post status; a pure function of the per-account results."""
    targets = set(target_ids)
    if not targets:
        return PostStatus.FAILED
    by_account = {r.account_id: r for r in results if r.account_id in targets}
    statuses = [by_account[t].status if t in by_account else ResultStatus.PENDING for t in targets]
    # a retracted copy was published; it still counts as delivered
    statuses = [ResultStatus.SUCCESS if s == ResultStatus.RETRACTED else s for s in statuses]
    if any(s == ResultStatus.PENDING for s in statuses):
        return PostStatus.PUBLISHING
    if all(s == ResultStatus.SUCCESS for s in statuses):
        return PostStatus.PUBLISHED
    if all(s == ResultStatus.FAILED for s in statuses):
        return PostStatus.FAILED
    return PostStatus.PARTIALLY_FAILED


def text_for(post: SocialPost, platform: str) -> str:
    return (post.content_variants or {}).get(platform) or post.content


def result_view(result: PublishResult) -> PublishResultRead:
    return PublishResultRead(
        account_id=result.account_id,
        platform=result.platform,
        status=result.status,
        platform_post_id=result.platform_post_id,
        platform_post_url=result.platform_post_url,
        error_message=result.error_message,
        reason_code=result.reason_code,
        failure_kind=result.failure_kind,
        attempt_count=result.attempt_count,
        last_attempted_at=result.last_attempted_at,
    )


class PostPublisher:
    """Fans one post out to its target accounts, one isolated attempt per account."""

    def __init__(
        self,
        session: AsyncSession,
        adapter_factory: Callable[[str], PlatformAdapter] = get_adapter,
        max_attempts: int = config.MAX_PUBLISH_ATTEMPTS,
        stale_after: int = config.SCHEDULER_STALE_AFTER_SECONDS,
    ):
        self.session = session
        self.posts = PostsRepository(session)
        self.accounts = AccountsRepository(session)
        self.adapter_factory = adapter_factory
        self.max_attempts = max_attempts
        self.stale_after = stale_after

    async def publish_post(self, post: SocialPost, retry_failed: bool = False, now: Optional[datetime] = None) -> PostStatus:
        """Publish an already-claimed post and persist its aggregate status."""
        media = await self.posts.list_media(post.id)
        targets = await self.posts.list_target_accounts(post.id)
        log = logger.bind(post_id=str(post.id), user_id=str(post.user_id))
        log.info("post_publish_started", targets=len(targets), media=len(media))

        for account in targets:
            await self._attempt(post, account, media, retry_failed, now)

        results = await self.posts.list_results(post.id)
        status = compute_post_status([a.id for a in targets], results)
        post.status = status
        if status in (PostStatus.PUBLISHED, PostStatus.PARTIALLY_FAILED) and post.published_at is None:
            post.published_at = now or utcnow()
        await self.posts.save(post)
        log.info("post_publish_finished", status=status.value)

        if status == PostStatus.PUBLISHED and post.evergreen_interval_days:
            await self._recycle_evergreen(post, now)
        return status

    async def _attempt(
        self,
        post: SocialPost,
        account: SocialAccount,
        media: List[MediaItem],
        retry_failed: bool,
        now: Optional[datetime],
    ) -> None:
        log = logger.bind(post_id=str(post.id), account_id=str(account.id), platform=account.platform)

        # re-read right before the call: a success must never be published twice
        result = await self.posts.get_result(post.id, account.id)
        if result is not None and result.status in (ResultStatus.SUCCESS, ResultStatus.RETRACTED):
            log.debug("publish_skipped_already_published")
            return
        if result is not None and result.status == ResultStatus.FAILED:
            if not retry_failed:
                return
            result.attempt_count = 0
        if result is None:
            result = PublishResult(post_id=post.id, account_id=account.id, platform=account.platform)

        result.attempt_count += 1
        result.last_attempted_at = now or utcnow()
        try:
            adapter = self.adapter_factory(account.platform)
            account = await ensure_fresh_token(account, adapter, self.accounts, now)
            published = await adapter.publish(account, text_for(post, account.platform), media)
        except PlatformError as exc:
            log.warning(
                "publish_attempt_failed",
                reason=exc.reason,
                transient=exc.transient,
                revoked=exc.revoked,
                attempt=result.attempt_count,
                detail=exc.detail,
            )
            await self._record_failure(result, exc)
            if exc.revoked and account.is_active:
                await self.accounts.mark_inactive(account, exc.reason)
                log.warning("account_marked_inactive", reason=exc.reason)
            return
        except Exception as exc:
            # the post may already be live: never retried automatically
            log.exception("publish_attempt_crashed", attempt=result.attempt_count)
            await self._record_failure(result, PlatformError("unexpected_error", detail=repr(exc)))
            return

        result.status = ResultStatus.SUCCESS
        result.platform_post_id = published.platform_post_id
        result.platform_post_url = published.platform_post_url
        result.error_message = None
        result.reason_code = None
        result.failure_kind = None
        await self.posts.save_result(result)
        log.info("publish_attempt_succeeded", platform_post_id=published.platform_post_id)

    async def _record_failure(self, result: PublishResult, exc: PlatformError) -> None:
        if exc.transient and result.attempt_count < self.max_attempts:
            result.status = ResultStatus.PENDING
            result.failure_kind = FailureKind.TRANSIENT
            result.reason_code = exc.reason
            result.error_message = exc.public_message
        elif exc.transient:
            result.status = ResultStatus.FAILED
            result.failure_kind = FailureKind.PERMANENT
            result.reason_code = "retries_exhausted"
            result.error_message = PUBLIC_MESSAGES["retries_exhausted"]
        else:
            result.status = ResultStatus.FAILED
            result.failure_kind = FailureKind.PERMANENT
            result.reason_code = exc.reason
            result.error_message = exc.public_message
        await self.posts.save_result(result)

    async def _recycle_evergreen(self, post: SocialPost, now: Optional[datetime]) -> SocialPost:
        next_at = (now or utcnow()) + timedelta(days=post.evergreen_interval_days)
        copy = SocialPost(
            user_id=post.user_id,
            content=post.content,
            content_variants=dict(post.content_variants or {}),
            scheduled_at=next_at,
            status=PostStatus.SCHEDULED,
            evergreen_interval_days=post.evergreen_interval_days,
            recycle_count=post.recycle_count + 1,
        )
        self.session.add(copy)
        await self.session.flush()
        await self.posts.copy_links(post.id, copy)
        logger.info("evergreen_recycled", post_id=str(post.id), next_post_id=str(copy.id), scheduled_at=next_at.isoformat())
        return copy

    async def publish_owned(self, post_id: uuid.UUID, user_id: uuid.UUID, now: Optional[datetime] = None) -> PublishOutcome:
        """Manual publish: same per-account logic as a scheduler pass, run synchronously."""
        post = await self.posts.get_owned(post_id, user_id)
        if post is None:
            logger.info("manual_publish_denied", post_id=str(post_id), user_id=str(user_id))
            raise AuthorizationError("post not found")

        if post.status != PostStatus.PUBLISHED:
            now = now or utcnow()
            claimed = await self.posts.claim(
                post.id,
                now,
                now - timedelta(seconds=self.stale_after),
                claimable=MANUALLY_CLAIMABLE,
                due_only=False,
            )
            if not claimed:
                raise ConflictError("post is being published")
            post = await self.posts.get_by_id(post.id)
            await self.publish_post(post, retry_failed=True, now=now)

        results = await self.posts.list_results(post.id)
        return PublishOutcome(post_id=post.id, status=post.status, results=[result_view(r) for r in results])

    async def retract_owned(self, post_id: uuid.UUID, user_id: uuid.UUID) -> RetractOutcome:
        """
        Delete the published copies of a post from their platforms.
        Each account is handled on its own; failures leave that copy marked published.
        """
        post = await self.posts.get_owned(post_id, user_id)
        if post is None:
            raise AuthorizationError("post not found")
        if post.status == PostStatus.PUBLISHING:
            raise ConflictError("post is being published")

        outcome = RetractOutcome(post_id=post.id)
        for result in await self.posts.list_results(post.id):
            if result.status != ResultStatus.SUCCESS or not result.platform_post_id:
                continue
            log = logger.bind(post_id=str(post.id), account_id=str(result.account_id), platform=result.platform)
            account = await self.accounts.get_by_id(result.account_id)
            try:
                if account is None:
                    raise PlatformError("account_inactive")
                adapter = self.adapter_factory(account.platform)
                account = await ensure_fresh_token(account, adapter, self.accounts)
                await adapter.delete_post(account, result.platform_post_id)
            except PlatformError as exc:
                log.warning("retract_failed", reason=exc.reason, detail=exc.detail)
                outcome.failed.append(RetractFailure(account_id=result.account_id, reason_code=exc.reason, error_message=exc.public_message))
                continue
            result.status = ResultStatus.RETRACTED
            await self.posts.save_result(result)
            outcome.retracted.append(result.account_id)
            log.info("post_retracted", platform_post_id=result.platform_post_id)
        return outcome
