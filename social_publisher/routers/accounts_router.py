# social_publisher/routers/accounts_router.py
from typing import Callable, List, Optional
import uuid

import httpx
import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import RedirectResponse
from sqlmodel.ext.asyncio.session import AsyncSession

from social_publisher import config, security
from social_publisher.dependencies.auth import get_current_user
from social_publisher.dependencies.db import get_session_dep
from social_publisher.dependencies.services import get_adapter_factory, get_state_store
from social_publisher.errors import (
    AuthorizationError,
    OAuthStateError,
    PlatformError,
    ValidationError,
    StorageError,
)
from social_publisher.platforms.registry import parse_platform
from social_publisher.schemas.account_schema import AccountRead
from social_publisher.services.connection_service import ConnectionManager

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/accounts", tags=["accounts"])


def _accounts_view(**params) -> RedirectResponse:
    url = httpx.URL(config.ACCOUNTS_VIEW_URL).include_query_params(**params)
    response = RedirectResponse(str(url), status_code=status.HTTP_302_FOUND)
    response.delete_cookie(
        config.OAUTH_COOKIE_NAME,
        path="/accounts/oauth",
        secure=config.COOKIE_SECURE,
        httponly=True,
        samesite=config.COOKIE_SAMESITE,
    )
    return response


@router.get("/oauth/{platform}/start")
async def connect_start(
    platform: str,
    session: AsyncSession = Depends(get_session_dep),
    current_user=Depends(get_current_user),
    adapter_factory: Callable = Depends(get_adapter_factory),
    state_store=Depends(get_state_store),
):
    mgr = ConnectionManager(session, state_store, adapter_factory)
    try:
        parse_platform(platform)
        start = mgr.initiate_connection(current_user.id, platform)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except PlatformError as exc:
        raise HTTPException(status_code=503, detail=exc.public_message)

    response = RedirectResponse(start.auth_url, status_code=status.HTTP_302_FOUND)
    response.set_cookie(
        config.OAUTH_COOKIE_NAME,
        start.sealed,
        max_age=config.OAUTH_STATE_TTL_SECONDS,
        path="/accounts/oauth",
        secure=config.COOKIE_SECURE,
        httponly=True,
        samesite=config.COOKIE_SAMESITE,
    )
    return response


@router.get("/oauth/{platform}/callback")
async def connect_callback(
    platform: str,
    request: Request,
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    session: AsyncSession = Depends(get_session_dep),
    adapter_factory: Callable = Depends(get_adapter_factory),
    state_store=Depends(get_state_store),
):
    # the handshake cookie is cleared on every outcome
    if error:
        logger.info("oauth_provider_error", platform=platform, error=error)
        return _accounts_view(error="access_denied")

    handshake = security.open_handshake(request.cookies.get(config.OAUTH_COOKIE_NAME))
    mgr = ConnectionManager(session, state_store, adapter_factory)
    try:
        parse_platform(platform)
        await mgr.complete_connection(platform, code, state, handshake)
    except OAuthStateError as exc:
        logger.warning("oauth_callback_rejected", platform=platform, reason=str(exc))
        return _accounts_view(error="oauth_state")
    except ValidationError:
        return _accounts_view(error="invalid_request")
    except PlatformError as exc:
        logger.warning("oauth_exchange_failed", platform=platform, reason=exc.reason, detail=exc.detail)
        return _accounts_view(error=exc.reason)
    except StorageError:
        return _accounts_view(error="storage_error")
    except Exception:
        logger.error("oauth_callback_crashed", platform=platform, exc_info=True)
        return _accounts_view(error="unexpected_error")
    return _accounts_view(connected=platform)


@router.get("", response_model=List[AccountRead])
async def list_accounts(session: AsyncSession = Depends(get_session_dep), current_user=Depends(get_current_user), state_store=Depends(get_state_store)):
    return await ConnectionManager(session, state_store).list_accounts(current_user.id)


@router.get("/{account_id}", response_model=AccountRead)
async def get_account(
    account_id: uuid.UUID,
    session: AsyncSession = Depends(get_session_dep),
    current_user=Depends(get_current_user),
    state_store=Depends(get_state_store),
):
    try:
        return await ConnectionManager(session, state_store).get_account(account_id, current_user.id)
    except AuthorizationError:
        raise HTTPException(status_code=404, detail="account not found")


@router.delete("/{account_id}", status_code=status.HTTP_204_NO_CONTENT)
async def disconnect_account(
    account_id: uuid.UUID,
    session: AsyncSession = Depends(get_session_dep),
    current_user=Depends(get_current_user),
    state_store=Depends(get_state_store),
):
    try:
        await ConnectionManager(session, state_store).disconnect(account_id, current_user.id)
    except AuthorizationError:
        raise HTTPException(status_code=404, detail="account not found")


@router.post("/{account_id}/validate", response_model=AccountRead)
async def validate_account(
    account_id: uuid.UUID,
    session: AsyncSession = Depends(get_session_dep),
    current_user=Depends(get_current_user),
    adapter_factory: Callable = Depends(get_adapter_factory),
    state_store=Depends(get_state_store),
):
    mgr = ConnectionManager(session, state_store, adapter_factory)
    try:
        return await mgr.validate_account(account_id, current_user.id)
    except AuthorizationError:
        raise HTTPException(status_code=404, detail="account not found")
    except PlatformError as exc:
        raise HTTPException(status_code=503, detail=exc.public_message)
