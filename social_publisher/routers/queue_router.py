# social_publisher/routers/queue_router.py
from typing import List
import uuid

from fastapi import APIRouter, Depends, HTTPException, status
from sqlmodel.ext.asyncio.session import AsyncSession

from social_publisher.dependencies.auth import get_current_user
from social_publisher.dependencies.db import get_session_dep
from social_publisher.errors import AuthorizationError, ConflictError, ValidationError
from social_publisher.schemas.post_schema import PostRead
from social_publisher.schemas.queue_schema import (
    QueueOrder,
    QueueSlotCreate,
    QueueSlotRead,
    QueueSlotUpdate,
    QueueStats,
)
from social_publisher.services.queue_service import QueueService

router = APIRouter(prefix="/queue", tags=["queue"])


@router.get("/slots", response_model=List[QueueSlotRead])
async def list_slots(session: AsyncSession = Depends(get_session_dep), current_user=Depends(get_current_user)):
    return await QueueService(session).list_slots(current_user.id)


@router.post("/slots", response_model=QueueSlotRead, status_code=status.HTTP_201_CREATED)
async def create_slot(payload: QueueSlotCreate, session: AsyncSession = Depends(get_session_dep), current_user=Depends(get_current_user)):
    try:
        return await QueueService(session).create_slot(current_user.id, payload)
    except ConflictError as exc:
        raise HTTPException(status_code=409, detail=str(exc))


@router.patch("/slots/{slot_id}", response_model=QueueSlotRead)
async def update_slot(
    slot_id: uuid.UUID,
    payload: QueueSlotUpdate,
    session: AsyncSession = Depends(get_session_dep),
    current_user=Depends(get_current_user),
):
    try:
        return await QueueService(session).update_slot(slot_id, current_user.id, payload)
    except AuthorizationError:
        raise HTTPException(status_code=404, detail="queue slot not found")


@router.delete("/slots/{slot_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_slot(slot_id: uuid.UUID, session: AsyncSession = Depends(get_session_dep), current_user=Depends(get_current_user)):
    try:
        await QueueService(session).delete_slot(slot_id, current_user.id)
    except AuthorizationError:
        raise HTTPException(status_code=404, detail="queue slot not found")


@router.post("/posts/{post_id}", response_model=PostRead)
async def add_to_queue(post_id: uuid.UUID, session: AsyncSession = Depends(get_session_dep), current_user=Depends(get_current_user)):
    try:
        return await QueueService(session).add_to_queue(post_id, current_user.id)
    except AuthorizationError:
        raise HTTPException(status_code=404, detail="post not found")
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except ConflictError as exc:
        raise HTTPException(status_code=409, detail=str(exc))


@router.put("/order", response_model=List[PostRead])
async def reorder_queue(payload: QueueOrder, session: AsyncSession = Depends(get_session_dep), current_user=Depends(get_current_user)):
    try:
        return await QueueService(session).reorder_queue(current_user.id, payload.post_ids)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except ConflictError as exc:
        raise HTTPException(status_code=409, detail=str(exc))


@router.get("/stats", response_model=QueueStats)
async def queue_stats(session: AsyncSession = Depends(get_session_dep), current_user=Depends(get_current_user)):
    return await QueueService(session).queue_stats(current_user.id)
