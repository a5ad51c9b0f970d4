# social_publisher/dependencies/auth.py
import secrets
import uuid
from typing import Optional

import structlog
from fastapi import Depends, Header, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from sqlmodel.ext.asyncio.session import AsyncSession

from social_publisher import config
from social_publisher.UAA.repository import UserRepository
from social_publisher.UAA.utils import decode_token
from social_publisher.dependencies.db import get_session_dep

logger = structlog.get_logger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl=config.AUTH_TOKEN_URL)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(token: str = Depends(oauth2_scheme), session: AsyncSession = Depends(get_session_dep)):
    try:
        payload = decode_token(token)
    except JWTError:
        raise _unauthorized("invalid token")
    if payload.get("type", "access") != "access":
        raise _unauthorized("invalid token type")
    try:
        user_id = uuid.UUID(str(payload.get("sub")))
    except ValueError:
        raise _unauthorized("invalid token subject")

    user = await UserRepository(session).get_by_id(user_id)
    if not user or not user.is_active:
        raise _unauthorized("user not found")
    return user


async def verify_cron_secret(
    authorization: Optional[str] = Header(default=None),
    x_cron_secret: Optional[str] = Header(default=None),
) -> None:
    """Shared-secret check for the scheduler trigger. Unconfigured secret rejects everything."""
    expected = config.CRON_SECRET
    presented = x_cron_secret
    if authorization and authorization.lower().startswith("bearer "):
        presented = authorization[7:].strip()
    if not expected or not presented or not secrets.compare_digest(presented.encode(), expected.encode()):
        logger.warning("cron_secret_rejected", configured=bool(expected))
        raise _unauthorized("invalid cron secret")
