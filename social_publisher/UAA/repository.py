# social_publisher/UAA/repository.py
from sqlmodel import select
from .models import User
from typing import Optional
import uuid

from social_publisher.infrastructure.database import Repository


class UserRepository(Repository):
    async def get_by_id(self, user_id: uuid.UUID) -> Optional[User]:
        q = select(User).where(User.id == user_id)
        res = await self.session.execute(q)
        return res.scalar_one_or_none()
