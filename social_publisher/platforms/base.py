# social_publisher/platforms/base.py
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Iterator, List, Optional

import httpx
import structlog

from social_publisher import config
from social_publisher.errors import PlatformError
from social_publisher.infrastructure.http_client import ExternalAPIClient
from social_publisher.models.media import MediaItem
from social_publisher.models.social_account import SocialAccount
from social_publisher.models.types import utcnow
from social_publisher.security import decrypt_token, encrypt_token

logger = structlog.get_logger(__name__)


class Platform(str, Enum):
    TWITTER = "twitter"
    LINKEDIN = "linkedin"
    FACEBOOK = "facebook"
    INSTAGRAM = "instagram"


@dataclass
class TokenSet:
    """Tokens as returned to callers: always encrypted."""
    access_token_enc: str
    refresh_token_enc: Optional[str] = None
    expires_at: Optional[datetime] = None


@dataclass
class PlatformProfile:
    platform_user_id: str
    username: Optional[str] = None
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None


@dataclass
class PublishedPost:
    platform_post_id: str
    platform_post_url: Optional[str] = None


class PlatformAdapter(ABC):
    """
    Uniform contract over one external platform.

    Adapters are the only place where plaintext tokens exist: they encrypt what
    the provider hands out and decrypt stored tokens for the duration of a call.
    """

    platform: Platform
    requires_pkce = False
    supports_refresh = False
    max_text_length: Optional[int] = None
    truncates_text = False
    max_media = 0
    scopes: List[str] = []

    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        redirect_uri: Optional[str] = None,
        http: Optional[ExternalAPIClient] = None,
    ):
        creds = config.platform_credentials(self.platform.value)
        self.client_id = client_id or creds["client_id"]
        self.client_secret = client_secret or creds["client_secret"]
        self.redirect_uri = redirect_uri or creds["redirect_uri"]
        self.http = http or ExternalAPIClient()

    @abstractmethod
    def build_auth_url(self, state: str, code_challenge: Optional[str] = None) -> str:
        ...

    @abstractmethod
    async def exchange_code(self, code: str, code_verifier: Optional[str] = None) -> TokenSet:
        ...

    @abstractmethod
    async def get_profile(self, access_token_enc: str) -> PlatformProfile:
        ...

    @abstractmethod
    async def publish(self, account: SocialAccount, content: str, media: List[MediaItem]) -> PublishedPost:
        ...

    async def refresh_token(self, account: SocialAccount) -> Optional[TokenSet]:
        """None means the platform has no refresh flow; the user must reconnect."""
        return None

    async def delete_post(self, account: SocialAccount, platform_post_id: str) -> None:
        raise PlatformError("not_supported", detail=f"{self.platform.value} has no delete endpoint")

    async def validate_token(self, account: SocialAccount) -> bool:
        """
        Ask the platform whether the stored access token still works.
        Transient failures propagate: they say nothing about the token.
        """
        try:
            await self.get_profile(account.access_token_enc)
        except PlatformError as exc:
            if exc.transient:
                raise
            logger.info("platform_token_invalid", platform=self.platform.value, reason=exc.reason)
            return False
        return True

    def can_refresh(self, account: SocialAccount) -> bool:
        return self.supports_refresh and bool(account.refresh_token_enc)

    # --- helpers shared by adapters ---
    def _require_configured(self) -> None:
        if not self.client_id or not self.client_secret:
            raise PlatformError("not_configured", detail=f"{self.platform.value} OAuth credentials missing")

    @contextmanager
    def _reading(self, action: str) -> Iterator[None]:
        """Turn a malformed success body into a permanent PlatformError."""
        try:
            yield
        except (ValueError, KeyError, TypeError, IndexError, AttributeError) as exc:
            raise PlatformError(
                "unexpected_response",
                detail=f"{self.platform.value} {action} returned an unreadable body: {exc!r}",
            ) from exc

    def _json(self, response: httpx.Response, action: str) -> dict:
        with self._reading(action):
            data = response.json()
            if not isinstance(data, dict):
                raise TypeError(f"expected a JSON object, got {type(data).__name__}")
        return data

    def _plain(self, token_enc: Optional[str]) -> str:
        token = decrypt_token(token_enc)
        if not token:
            raise PlatformError("token_unreadable", revoked=True)
        return token

    def _access_token(self, account: SocialAccount) -> str:
        return self._plain(account.access_token_enc)

    def _token_set(self, data: dict) -> TokenSet:
        access = data.get("access_token")
        if not access:
            raise PlatformError("exchange_failed", detail=f"{self.platform.value} returned no access token")
        expires_in = data.get("expires_in")
        return TokenSet(
            access_token_enc=encrypt_token(access),
            refresh_token_enc=encrypt_token(data.get("refresh_token")),
            expires_at=utcnow() + timedelta(seconds=int(expires_in)) if expires_in else None,
        )

    def _prepare_text(self, content: str) -> str:
        limit = self.max_text_length
        if limit and len(content) > limit:
            if not self.truncates_text:
                raise PlatformError("content_rejected", detail=f"text exceeds {limit} characters")
            return content[: limit - 3] + "..."
        return content

    def _raise_for_response(self, response: httpx.Response, action: str) -> None:
        """Map an HTTP failure onto the transient/permanent taxonomy."""
        status = response.status_code
        if status < 400:
            return
        detail = f"{self.platform.value} {action} failed ({status}): {response.text[:500]}"
        logger.info("platform_call_failed", platform=self.platform.value, action=action, status=status)
        if status == 429:
            raise PlatformError("rate_limited", transient=True, detail=detail)
        if status >= 500:
            raise PlatformError("platform_unavailable", transient=True, detail=detail)
        if status == 401:
            raise PlatformError("token_revoked", revoked=True, detail=detail)
        if status == 403:
            raise PlatformError("forbidden", detail=detail)
        raise PlatformError("content_rejected", detail=detail)

    def _raise_for_token_response(self, response: httpx.Response, refreshing: bool = False) -> None:
        """Token endpoints answer 400 invalid_grant for bad codes and dead refresh tokens."""
        status = response.status_code
        if 400 <= status < 500 and status != 429:
            detail = f"{self.platform.value} token endpoint failed ({status}): {response.text[:500]}"
            if refreshing:
                raise PlatformError("token_revoked", revoked=True, detail=detail)
            raise PlatformError("exchange_failed", detail=detail)
        self._raise_for_response(response, "refresh" if refreshing else "token_exchange")
