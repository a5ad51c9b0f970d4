# social_publisher/UAA/utils.py
from typing import Dict, Any

import structlog
from jose import jwt, JWTError

from social_publisher import config

logger = structlog.get_logger(__name__)


def decode_token(token: str) -> Dict[str, Any]:
    """Verify a token issued by the identity provider and return its claims."""
    try:
        return jwt.decode(token, config.SECRET_KEY, algorithms=[config.ALGORITHM])
    except JWTError as e:
        logger.warning("token_decode_failed", error=str(e))
        raise
