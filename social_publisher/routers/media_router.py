# social_publisher/routers/media_router.py
from typing import List, Optional
import uuid

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from sqlmodel.ext.asyncio.session import AsyncSession

from social_publisher.dependencies.auth import get_current_user
from social_publisher.dependencies.db import get_session_dep
from social_publisher.dependencies.services import get_media_storage
from social_publisher.errors import AuthorizationError, ValidationError
from social_publisher.infrastructure.media_storage import MediaStorage
from social_publisher.schemas.media_schema import MediaRead
from social_publisher.services.media_service import MediaService

router = APIRouter(prefix="/media", tags=["media"])


@router.post("", response_model=MediaRead, status_code=status.HTTP_201_CREATED)
async def upload_media(
    file: UploadFile = File(...),
    alt_text: Optional[str] = Form(default=None),
    session: AsyncSession = Depends(get_session_dep),
    current_user=Depends(get_current_user),
    storage: MediaStorage = Depends(get_media_storage),
):
    svc = MediaService(session, storage)
    data = await file.read()
    try:
        return await svc.upload(current_user.id, file.filename, file.content_type, data, alt_text)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


@router.get("", response_model=List[MediaRead])
async def list_media(
    session: AsyncSession = Depends(get_session_dep),
    current_user=Depends(get_current_user),
    storage: MediaStorage = Depends(get_media_storage),
):
    return await MediaService(session, storage).list_media(current_user.id)


@router.delete("/{media_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_media(
    media_id: uuid.UUID,
    session: AsyncSession = Depends(get_session_dep),
    current_user=Depends(get_current_user),
    storage: MediaStorage = Depends(get_media_storage),
):
    try:
        await MediaService(session, storage).delete(media_id, current_user.id)
    except AuthorizationError:
        raise HTTPException(status_code=404, detail="media not found")
