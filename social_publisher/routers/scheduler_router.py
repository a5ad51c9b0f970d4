# social_publisher/routers/scheduler_router.py
from typing import Callable

from fastapi import APIRouter, Depends
from sqlmodel.ext.asyncio.session import AsyncSession

from social_publisher.dependencies.auth import verify_cron_secret
from social_publisher.dependencies.db import get_session_dep
from social_publisher.dependencies.services import get_adapter_factory
from social_publisher.schemas.scheduler_schema import SchedulerSummary
from social_publisher.services.publisher import PostPublisher
from social_publisher.services.scheduler import PublishingScheduler

router = APIRouter(prefix="/scheduler", tags=["scheduler"])


@router.api_route("/run", methods=["GET", "POST"], response_model=SchedulerSummary, dependencies=[Depends(verify_cron_secret)])
async def run_scheduler(session: AsyncSession = Depends(get_session_dep), adapter_factory: Callable = Depends(get_adapter_factory)):
    scheduler = PublishingScheduler(session, publisher=PostPublisher(session, adapter_factory=adapter_factory))
    return await scheduler.run()
