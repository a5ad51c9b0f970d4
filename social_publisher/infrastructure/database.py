# social_publisher/infrastructure/database.py
from contextlib import asynccontextmanager
from typing import AsyncIterator

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio.engine import create_async_engine, AsyncEngine
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from social_publisher import config
from social_publisher.errors import StorageError

logger = structlog.get_logger(__name__)

engine: AsyncEngine = create_async_engine(config.DATABASE_URL, echo=False)


async def init_db(bind: AsyncEngine = engine):
    # table modules must be imported so their metadata is registered
    from social_publisher.UAA import models as _user_models  # noqa: F401
    from social_publisher.models import media, post, social_account  # noqa: F401

    async with bind.begin() as connection:
        await connection.run_sync(SQLModel.metadata.create_all)
    logger.info("db_tables_ready")


@asynccontextmanager
async def get_session() -> AsyncIterator[AsyncSession]:
    # expire_on_commit=False: attributes stay readable after commit without an implicit (sync) reload
    async with AsyncSession(engine, expire_on_commit=False) as session:
        yield session


class Repository:
    """
    Base for repositories. All methods are async and expect an AsyncSession
    to be injected from the outside.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _commit(self) -> None:
        try:
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            logger.exception("db_commit_failed", repository=type(self).__name__)
            raise StorageError("database write failed") from exc
