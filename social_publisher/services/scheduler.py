# social_publisher/services/scheduler.py
from datetime import datetime, timedelta
from typing import Optional
import time

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel.ext.asyncio.session import AsyncSession

from social_publisher import config
from social_publisher.errors import StorageError
from social_publisher.infrastructure.posts_repo import PostsRepository
from social_publisher.models.post import PostStatus
from social_publisher.models.types import as_utc, utcnow
from social_publisher.schemas.scheduler_schema import SchedulerSummary
from social_publisher.services.publisher import PostPublisher

logger = structlog.get_logger(__name__)


class PublishingScheduler:
    """
    One stateless pass over due posts, triggered by the external cron.

    Overlapping passes are safe: each post is claimed with a conditional row
    update and only the winner publishes it.
    """

    def __init__(
        self,
        session: AsyncSession,
        publisher: Optional[PostPublisher] = None,
        batch_size: int = config.SCHEDULER_BATCH_SIZE,
        stale_after: int = config.SCHEDULER_STALE_AFTER_SECONDS,
        time_budget: float = config.SCHEDULER_TIME_BUDGET_SECONDS,
        clock=time.monotonic,
    ):
        self.session = session
        self.posts = PostsRepository(session)
        self.publisher = publisher or PostPublisher(session)
        self.batch_size = batch_size
        self.stale_after = stale_after
        self.time_budget = time_budget
        self.clock = clock

    async def run(self, now: Optional[datetime] = None) -> SchedulerSummary:
        now = as_utc(now or utcnow())
        started = self.clock()
        stale_before = now - timedelta(seconds=self.stale_after)
        summary = SchedulerSummary(timestamp=now)

        post_ids = await self.posts.select_due_ids(now, stale_before, self.batch_size)
        logger.info("scheduler_pass_started", due=len(post_ids))

        for index, post_id in enumerate(post_ids):
            if self.clock() - started >= self.time_budget:
                summary.deferred = len(post_ids) - index
                logger.warning("scheduler_time_budget_exhausted", deferred=summary.deferred)
                break

            try:
                if not await self.posts.claim(post_id, now, stale_before):
                    summary.skipped += 1
                    continue
                post = await self.posts.get_by_id(post_id)
                logger.info("post_claimed", post_id=str(post_id))
                status = await self.publisher.publish_post(post, now=now)
            except (StorageError, SQLAlchemyError):
                logger.exception("scheduler_post_failed", post_id=str(post_id))
                await self.session.rollback()
                summary.errors += 1
                continue

            summary.processed += 1
            if status == PostStatus.PUBLISHED:
                summary.published += 1
            elif status == PostStatus.PARTIALLY_FAILED:
                summary.partially_failed += 1
            elif status == PostStatus.FAILED:
                summary.failed += 1
            else:
                summary.pending += 1

        summary.success = summary.errors == 0
        logger.info("scheduler_pass_finished", **summary.model_dump(exclude={"timestamp", "success"}))
        return summary
