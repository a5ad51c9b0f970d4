# social_publisher/routers/post_router.py
from typing import Callable, List, Optional
import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlmodel.ext.asyncio.session import AsyncSession

from social_publisher.dependencies.auth import get_current_user
from social_publisher.dependencies.db import get_session_dep
from social_publisher.dependencies.services import get_adapter_factory
from social_publisher.errors import AuthorizationError, ConflictError, ValidationError
from social_publisher.models.post import PostStatus
from social_publisher.schemas.post_schema import PostCreate, PostRead, PostUpdate, PublishOutcome, RetractOutcome, ScheduleCreate
from social_publisher.services.post_service import PostService
from social_publisher.services.publisher import PostPublisher

router = APIRouter(prefix="/posts", tags=["posts"])


@router.post("", response_model=PostRead, status_code=status.HTTP_201_CREATED)
async def create_post(payload: PostCreate, session: AsyncSession = Depends(get_session_dep), current_user=Depends(get_current_user)):
    svc = PostService(session)
    try:
        return await svc.create_post(current_user.id, payload)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


@router.get("", response_model=List[PostRead])
async def list_posts(
    status_filter: Optional[PostStatus] = Query(default=None, alias="status"),
    session: AsyncSession = Depends(get_session_dep),
    current_user=Depends(get_current_user),
):
    return await PostService(session).list_posts(current_user.id, status_filter)


@router.get("/{post_id}", response_model=PostRead)
async def get_post(post_id: uuid.UUID, session: AsyncSession = Depends(get_session_dep), current_user=Depends(get_current_user)):
    try:
        return await PostService(session).get_post(post_id, current_user.id)
    except AuthorizationError:
        raise HTTPException(status_code=404, detail="post not found")


@router.patch("/{post_id}", response_model=PostRead)
async def update_post(
    post_id: uuid.UUID,
    payload: PostUpdate,
    session: AsyncSession = Depends(get_session_dep),
    current_user=Depends(get_current_user),
):
    svc = PostService(session)
    try:
        return await svc.update_post(post_id, current_user.id, payload)
    except AuthorizationError:
        raise HTTPException(status_code=404, detail="post not found")
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except ConflictError as exc:
        raise HTTPException(status_code=409, detail=str(exc))


@router.delete("/{post_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_post(post_id: uuid.UUID, session: AsyncSession = Depends(get_session_dep), current_user=Depends(get_current_user)):
    try:
        await PostService(session).delete_post(post_id, current_user.id)
    except AuthorizationError:
        raise HTTPException(status_code=404, detail="post not found")
    except ConflictError as exc:
        raise HTTPException(status_code=409, detail=str(exc))


@router.post("/{post_id}/schedule", response_model=PostRead)
async def schedule_post(
    post_id: uuid.UUID,
    payload: ScheduleCreate,
    session: AsyncSession = Depends(get_session_dep),
    current_user=Depends(get_current_user),
):
    svc = PostService(session)
    try:
        return await svc.schedule_post(post_id, current_user.id, payload)
    except AuthorizationError:
        raise HTTPException(status_code=404, detail="post not found")
    except ConflictError as exc:
        raise HTTPException(status_code=409, detail=str(exc))


@router.post("/{post_id}/publish", response_model=PublishOutcome)
async def publish_now(
    post_id: uuid.UUID,
    session: AsyncSession = Depends(get_session_dep),
    current_user=Depends(get_current_user),
    adapter_factory: Callable = Depends(get_adapter_factory),
):
    publisher = PostPublisher(session, adapter_factory=adapter_factory)
    try:
        return await publisher.publish_owned(post_id, current_user.id)
    except AuthorizationError:
        raise HTTPException(status_code=404, detail="post not found")
    except ConflictError as exc:
        raise HTTPException(status_code=409, detail=str(exc))


@router.post("/{post_id}/retract", response_model=RetractOutcome)
async def retract_post(
    post_id: uuid.UUID,
    session: AsyncSession = Depends(get_session_dep),
    current_user=Depends(get_current_user),
    adapter_factory: Callable = Depends(get_adapter_factory),
):
    publisher = PostPublisher(session, adapter_factory=adapter_factory)
    try:
        return await publisher.retract_owned(post_id, current_user.id)
    except AuthorizationError:
        raise HTTPException(status_code=404, detail="post not found")
    except ConflictError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
