# social_publisher/infrastructure/queue_repo.py
from typing import Optional, List
from sqlmodel import select, col
import uuid

from social_publisher.infrastructure.database import Repository
from social_publisher.models.post import QueueSlot


class QueueSlotRepository(Repository):
    async def create(self, slot: QueueSlot) -> QueueSlot:
        self.session.add(slot)
        await self._commit()
        await self.session.refresh(slot)
        return slot

    async def get_owned(self, id: uuid.UUID, user_id: uuid.UUID) -> Optional[QueueSlot]:
        q = select(QueueSlot).where(QueueSlot.id == id, QueueSlot.user_id == user_id)
        res = await self.session.execute(q)
        return res.scalar_one_or_none()

    async def get_by_time(self, user_id: uuid.UUID, day_of_week: int, time_slot: str) -> Optional[QueueSlot]:
        q = select(QueueSlot).where(
            QueueSlot.user_id == user_id,
            QueueSlot.day_of_week == day_of_week,
            QueueSlot.time_slot == time_slot,
        )
        res = await self.session.execute(q)
        return res.scalar_one_or_none()

    async def list_by_user(self, user_id: uuid.UUID, active_only: bool = False) -> List[QueueSlot]:
        q = select(QueueSlot).where(QueueSlot.user_id == user_id)
        if active_only:
            q = q.where(col(QueueSlot.is_active).is_(True))
        q = q.order_by(QueueSlot.day_of_week, QueueSlot.time_slot)
        res = await self.session.execute(q)
        return list(res.scalars().all())

    async def save(self, slot: QueueSlot) -> QueueSlot:
        self.session.add(slot)
        await self._commit()
        return slot

    async def delete(self, slot: QueueSlot) -> None:
        await self.session.delete(slot)
        await self._commit()
