# social_publisher/services/queue_service.py
from datetime import datetime, time, timedelta, timezone
from typing import Iterable, Iterator, List, Optional, Sequence, Tuple
import uuid

import structlog
from sqlmodel.ext.asyncio.session import AsyncSession

from social_publisher.errors import AuthorizationError, ConflictError, ValidationError
from social_publisher.infrastructure.posts_repo import PostsRepository
from social_publisher.infrastructure.queue_repo import QueueSlotRepository
from social_publisher.models.post import PostStatus, QueueSlot
from social_publisher.models.types import as_utc, utcnow
from social_publisher.schemas.post_schema import PostRead
from social_publisher.schemas.queue_schema import (
    QueueSlotCreate,
    QueueSlotRead,
    QueueSlotUpdate,
    QueueStats,
)
from social_publisher.services.post_service import EDITABLE, PostService

logger = structlog.get_logger(__name__)

# a post within this distance of a slot occupies it
OCCUPANCY_WINDOW = timedelta(minutes=5)
LOOKAHEAD_DAYS = 14
REORDER_HORIZON_DAYS = 365
STATS_DAYS = 7


def slot_clock(slot: QueueSlot) -> time:
    hours, minutes = (int(part) for part in slot.time_slot.split(":"))
    return time(hours, minutes, tzinfo=timezone.utc)


def upcoming_slot_times(slots: Sequence[QueueSlot], now: datetime, days: int) -> Iterator[Tuple[datetime, QueueSlot]]:
    """Occurrences of the weekly slots strictly after `now`, in time order."""
    now = as_utc(now)
    ordered = sorted(slots, key=lambda s: s.time_slot)
    for offset in range(days):
        day = (now + timedelta(days=offset)).date()
        for slot in ordered:
            if slot.day_of_week != day.weekday():
                continue
            at = datetime.combine(day, slot_clock(slot))
            if at > now:
                yield at, slot


def serves(slot: QueueSlot, platforms: Iterable[str]) -> bool:
    return bool(set(slot.platforms or []) & set(platforms))


def is_free(at: datetime, occupied: Iterable[datetime]) -> bool:
    return all(abs(at - as_utc(taken)) > OCCUPANCY_WINDOW for taken in occupied)


def to_read(slot: QueueSlot) -> QueueSlotRead:
    return QueueSlotRead(
        id=slot.id,
        day_of_week=slot.day_of_week,
        time_slot=slot.time_slot,
        platforms=list(slot.platforms or []),
        is_active=slot.is_active,
        created_at=slot.created_at,
    )


class QueueService:
    """
    Weekly publishing slots and the queue of posts spread over them.

    Queued posts are ordinary scheduled posts: the slot only decides their
    scheduled time, the scheduler publishes them like any other.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.slots = QueueSlotRepository(session)
        self.posts = PostsRepository(session)
        self.post_service = PostService(session)

    # --- slots ---
    async def create_slot(self, user_id: uuid.UUID, payload: QueueSlotCreate) -> QueueSlotRead:
        if await self.slots.get_by_time(user_id, payload.day_of_week, payload.time_slot) is not None:
            raise ConflictError("a slot already exists at this time")
        slot = await self.slots.create(
            QueueSlot(
                user_id=user_id,
                day_of_week=payload.day_of_week,
                time_slot=payload.time_slot,
                platforms=sorted({p.value for p in payload.platforms}),
            )
        )
        logger.info("queue_slot_created", slot_id=str(slot.id), user_id=str(user_id), day=slot.day_of_week, time=slot.time_slot)
        return to_read(slot)

    async def list_slots(self, user_id: uuid.UUID) -> List[QueueSlotRead]:
        return [to_read(s) for s in await self.slots.list_by_user(user_id)]

    async def update_slot(self, slot_id: uuid.UUID, user_id: uuid.UUID, payload: QueueSlotUpdate) -> QueueSlotRead:
        slot = await self._get_owned(slot_id, user_id)
        if payload.platforms is not None:
            slot.platforms = sorted({p.value for p in payload.platforms})
        if payload.is_active is not None:
            slot.is_active = payload.is_active
        return to_read(await self.slots.save(slot))

    async def delete_slot(self, slot_id: uuid.UUID, user_id: uuid.UUID) -> None:
        slot = await self._get_owned(slot_id, user_id)
        await self.slots.delete(slot)
        logger.info("queue_slot_deleted", slot_id=str(slot_id), user_id=str(user_id))

    async def _get_owned(self, slot_id: uuid.UUID, user_id: uuid.UUID) -> QueueSlot:
        slot = await self.slots.get_owned(slot_id, user_id)
        if slot is None:
            raise AuthorizationError("queue slot not found")
        return slot

    # --- queue ---
    async def next_available_slot(
        self,
        user_id: uuid.UUID,
        platforms: Sequence[str],
        now: Optional[datetime] = None,
        exclude_post_id: Optional[uuid.UUID] = None,
    ) -> Optional[datetime]:
        """First free slot occurrence in the next two weeks serving any of `platforms`."""
        now = as_utc(now or utcnow())
        slots = await self.slots.list_by_user(user_id, active_only=True)
        if not slots or not platforms:
            return None
        horizon = now + timedelta(days=LOOKAHEAD_DAYS)
        occupied = await self.posts.list_occupied_times(
            user_id, now - OCCUPANCY_WINDOW, horizon + OCCUPANCY_WINDOW, exclude_id=exclude_post_id
        )
        for at, slot in upcoming_slot_times(slots, now, LOOKAHEAD_DAYS):
            if serves(slot, platforms) and is_free(at, occupied):
                return at
        return None

    async def add_to_queue(self, post_id: uuid.UUID, user_id: uuid.UUID, now: Optional[datetime] = None) -> PostRead:
        post = await self.posts.get_owned(post_id, user_id)
        if post is None:
            raise AuthorizationError("post not found")
        if post.status not in EDITABLE:
            raise ConflictError(f"post is {post.status.value} and cannot be queued")
        platforms = await self.posts.list_target_platforms(post_id)
        if not platforms:
            raise ValidationError("post has no target accounts")

        at = await self.next_available_slot(user_id, platforms, now, exclude_post_id=post_id)
        if at is None:
            raise ConflictError(f"no free queue slot in the next {LOOKAHEAD_DAYS} days")
        position = await self.posts.next_queue_position(user_id)
        if not await self.posts.transition(post_id, EDITABLE, status=PostStatus.SCHEDULED, scheduled_at=at, queue_position=position):
            raise ConflictError("post was claimed for publishing and cannot be queued")
        logger.info("post_queued", post_id=str(post_id), scheduled_at=at.isoformat(), position=position)
        return await self.post_service.to_read(await self.posts.get_by_id(post_id))

    async def reorder_queue(self, user_id: uuid.UUID, post_ids: Sequence[uuid.UUID], now: Optional[datetime] = None) -> List[PostRead]:
        """
        Put the listed posts at the head of the queue in the given order, keep the
        rest behind them, then hand out slot times again from the earliest free one.
        """
        now = as_utc(now or utcnow())
        queued = await self.posts.list_queued(user_id)
        by_id = {p.id: p for p in queued}
        requested = list(dict.fromkeys(post_ids))
        missing = [str(i) for i in requested if i not in by_id]
        if missing:
            raise ValidationError(f"not in the queue: {', '.join(missing)}")
        slots = await self.slots.list_by_user(user_id, active_only=True)
        if not slots:
            raise ConflictError("no active queue slots")

        order = requested + [p.id for p in queued if p.id not in set(requested)]
        timeline = list(upcoming_slot_times(slots, now, REORDER_HORIZON_DAYS))
        # posts outside the queue keep their times
        occupied = await self.posts.list_occupied_times(
            user_id,
            now - OCCUPANCY_WINDOW,
            timeline[-1][0] + OCCUPANCY_WINDOW if timeline else now,
            statuses=[PostStatus.PUBLISHING, PostStatus.PUBLISHED],
        )
        taken = set()
        for position, post_id in enumerate(order):
            platforms = await self.posts.list_target_platforms(post_id)
            values = {"queue_position": position}
            for index, (at, slot) in enumerate(timeline):
                if index not in taken and serves(slot, platforms) and is_free(at, occupied):
                    taken.add(index)
                    values["scheduled_at"] = at
                    break
            if not await self.posts.transition(post_id, [PostStatus.SCHEDULED], **values):
                logger.info("queue_reorder_skipped", post_id=str(post_id))

        logger.info("queue_reordered", user_id=str(user_id), posts=len(order))
        return [await self.post_service.to_read(p) for p in await self.posts.list_queued(user_id)]

    async def queue_stats(self, user_id: uuid.UUID, now: Optional[datetime] = None) -> QueueStats:
        now = as_utc(now or utcnow())
        queued = await self.posts.list_queued(user_id)
        times = [as_utc(p.scheduled_at) for p in queued if p.scheduled_at is not None]
        slots = await self.slots.list_by_user(user_id, active_only=True)

        horizon = now + timedelta(days=STATS_DAYS)
        occupied = await self.posts.list_occupied_times(user_id, now - OCCUPANCY_WINDOW, horizon + OCCUPANCY_WINDOW)
        empty = sum(1 for at, _ in upcoming_slot_times(slots, now, STATS_DAYS) if is_free(at, occupied))
        return QueueStats(
            total_scheduled=len(queued),
            next_post_at=min(times) if times else None,
            active_slots=len(slots),
            empty_slots=empty,
        )
