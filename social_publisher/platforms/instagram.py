# social_publisher/platforms/instagram.py
from typing import List, Optional

import httpx

from social_publisher.errors import PlatformError
from social_publisher.models.media import MediaItem
from social_publisher.models.social_account import SocialAccount
from social_publisher.platforms.base import (
    Platform,
    PlatformAdapter,
    PlatformProfile,
    PublishedPost,
    TokenSet,
)
from social_publisher.platforms.facebook import GraphErrorsMixin

INSTAGRAM_AUTH_URL = "https://www.instagram.com/oauth/authorize"
INSTAGRAM_TOKEN_URL = "https://api.instagram.com/oauth/access_token"
INSTAGRAM_GRAPH_BASE = "https://graph.instagram.com"


class InstagramAdapter(GraphErrorsMixin, PlatformAdapter):
    """
    Instagram professional accounts through Instagram Login.
    Long-lived tokens are refreshed with the token itself; posts need an image.
    """

    platform = Platform.INSTAGRAM
    supports_refresh = True
    max_text_length = 2200
    max_media = 1
    scopes = ["instagram_business_basic", "instagram_business_content_publish"]

    def build_auth_url(self, state: str, code_challenge: Optional[str] = None) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": ",".join(self.scopes),
            "state": state,
        }
        return str(httpx.URL(INSTAGRAM_AUTH_URL).include_query_params(**params))

    def can_refresh(self, account: SocialAccount) -> bool:
        return bool(account.access_token_enc)

    async def exchange_code(self, code: str, code_verifier: Optional[str] = None) -> TokenSet:
        self._require_configured()
        resp = await self.http.post(
            INSTAGRAM_TOKEN_URL,
            data={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "grant_type": "authorization_code",
                "redirect_uri": self.redirect_uri,
                "code": code,
            },
        )
        self._raise_for_token_response(resp)
        body = self._json(resp, "token_exchange")
        # newer responses wrap the token in a one-element "data" list
        with self._reading("token_exchange"):
            short_lived = (body.get("data") or [body])[0].get("access_token")
        if not short_lived:
            raise PlatformError("exchange_failed", detail="instagram returned no access token")

        resp = await self.http.get(
            f"{INSTAGRAM_GRAPH_BASE}/access_token",
            params={"grant_type": "ig_exchange_token", "client_secret": self.client_secret, "access_token": short_lived},
        )
        self._raise_for_token_response(resp)
        return self._token_set(self._json(resp, "token_exchange"))

    async def refresh_token(self, account: SocialAccount) -> Optional[TokenSet]:
        resp = await self.http.get(
            f"{INSTAGRAM_GRAPH_BASE}/refresh_access_token",
            params={"grant_type": "ig_refresh_token", "access_token": self._access_token(account)},
        )
        self._raise_for_token_response(resp, refreshing=True)
        return self._token_set(self._json(resp, "refresh"))

    async def get_profile(self, access_token_enc: str) -> PlatformProfile:
        resp = await self.http.get(
            f"{INSTAGRAM_GRAPH_BASE}/me",
            params={"fields": "user_id,username,name,profile_picture_url", "access_token": self._plain(access_token_enc)},
        )
        self._raise_for_response(resp, "profile")
        data = self._json(resp, "profile")
        with self._reading("profile"):
            return PlatformProfile(
                platform_user_id=str(data.get("user_id") or data["id"]),
                username=data.get("username"),
                display_name=data.get("name"),
                avatar_url=data.get("profile_picture_url"),
            )

    async def publish(self, account: SocialAccount, content: str, media: List[MediaItem]) -> PublishedPost:
        images = [m for m in media if m.mime_type.startswith("image/")]
        if not images:
            raise PlatformError("media_required")
        token = self._access_token(account)
        caption = self._prepare_text(content)

        container = await self.http.post(
            f"{INSTAGRAM_GRAPH_BASE}/{account.platform_user_id}/media",
            data={"image_url": images[0].storage_url, "caption": caption, "access_token": token},
        )
        self._raise_for_response(container, "media_container")
        with self._reading("media_container"):
            creation_id = self._json(container, "media_container")["id"]

        resp = await self.http.post(
            f"{INSTAGRAM_GRAPH_BASE}/{account.platform_user_id}/media_publish",
            data={"creation_id": creation_id, "access_token": token},
        )
        self._raise_for_response(resp, "publish")
        with self._reading("publish"):
            media_id = str(self._json(resp, "publish")["id"])
        return PublishedPost(platform_post_id=media_id)
