# social_publisher/security.py
import base64
import hashlib
import json
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Tuple

import structlog
from cryptography.fernet import Fernet, InvalidToken

from social_publisher import config
from social_publisher.models.types import as_utc, utcnow

logger = structlog.get_logger(__name__)

STATE_BYTES = 32
PKCE_VERIFIER_BYTES = 64
CONSUMED_STATE_PREFIX = "oauth_state_used:"

_token_key = config.TOKEN_ENCRYPTION_KEY
if not _token_key:
    # dev fallback (not for production): tokens become unreadable after restart
    _token_key = Fernet.generate_key().decode()
    logger.warning("token_encryption_key_missing_using_ephemeral_key")

fernet = Fernet(_token_key.encode())


@dataclass
class PKCEPair:
    verifier: str
    challenge: str


@dataclass
class HandshakeSecret:
    state: str
    platform: str
    user_id: str
    expires_at: datetime
    code_verifier: Optional[str] = None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return as_utc(now or utcnow()) >= as_utc(self.expires_at)


# --- state & PKCE ---
def generate_state() -> str:
    return secrets.token_urlsafe(STATE_BYTES)


def verify_state(received: Optional[str], expected: Optional[str]) -> bool:
    if not received or not expected:
        return False
    return secrets.compare_digest(received.encode(), expected.encode())


def pkce_challenge(verifier: str) -> str:
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def generate_pkce_pair() -> PKCEPair:
    verifier = secrets.token_urlsafe(PKCE_VERIFIER_BYTES)
    return PKCEPair(verifier=verifier, challenge=pkce_challenge(verifier))


# --- token encryption at rest ---
def encrypt_token(plaintext: Optional[str]) -> Optional[str]:
    if plaintext is None:
        return None
    return fernet.encrypt(plaintext.encode()).decode()


def decrypt_token(ciphertext: Optional[str]) -> Optional[str]:
    if not ciphertext:
        return None
    try:
        return fernet.decrypt(ciphertext.encode()).decode()
    except InvalidToken:
        logger.warning("token_decrypt_failed")
        return None


# --- OAuth handshake secret, carried by the client in a sealed cookie ---
def new_handshake(
    user_id: str,
    platform: str,
    requires_pkce: bool,
    now: Optional[datetime] = None,
    ttl_seconds: int = config.OAUTH_STATE_TTL_SECONDS,
) -> Tuple[HandshakeSecret, Optional[PKCEPair]]:
    pkce = generate_pkce_pair() if requires_pkce else None
    secret = HandshakeSecret(
        state=generate_state(),
        platform=platform,
        user_id=str(user_id),
        expires_at=as_utc(now or utcnow()) + timedelta(seconds=ttl_seconds),
        code_verifier=pkce.verifier if pkce else None,
    )
    return secret, pkce


def seal_handshake(secret: HandshakeSecret) -> str:
    payload = {
        "state": secret.state,
        "platform": secret.platform,
        "user_id": secret.user_id,
        "expires_at": secret.expires_at.isoformat(),
        "code_verifier": secret.code_verifier,
    }
    return fernet.encrypt(json.dumps(payload).encode()).decode()


def open_handshake(sealed: Optional[str]) -> Optional[HandshakeSecret]:
    """Returns None for a missing, tampered or malformed cookie value."""
    if not sealed:
        return None
    try:
        payload = json.loads(fernet.decrypt(sealed.encode()).decode())
        return HandshakeSecret(
            state=payload["state"],
            platform=payload["platform"],
            user_id=payload["user_id"],
            expires_at=as_utc(datetime.fromisoformat(payload["expires_at"])),
            code_verifier=payload.get("code_verifier"),
        )
    except (InvalidToken, ValueError, KeyError, TypeError):
        logger.info("oauth_handshake_unreadable")
        return None


async def consume_state(store, state: str, ttl_seconds: int = config.OAUTH_STATE_TTL_SECONDS) -> bool:
    """
    Record `state` as used. Returns False when it was already consumed.
    `store` is a redis.asyncio client (or anything with the same `set`).
    """
    created = await store.set(f"{CONSUMED_STATE_PREFIX}{state}", "1", nx=True, ex=ttl_seconds)
    return bool(created)
