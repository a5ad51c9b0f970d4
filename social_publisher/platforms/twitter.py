# social_publisher/platforms/twitter.py
import base64
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

TWITTER_AUTH_URL = "https://twitter.com/i/oauth2/authorize"
TWITTER_TOKEN_URL = "https://api.twitter.com/2/oauth2/token"
TWITTER_API_BASE = "https://api.twitter.com/2"
TWITTER_UPLOAD_URL = "https://upload.twitter.com/1.1/media/upload.json"


class TwitterAdapter(PlatformAdapter):
    """Twitter/X: OAuth 2.0 with PKCE, API v2 for posting."""

    platform = Platform.TWITTER
    requires_pkce = True
    supports_refresh = True
    max_text_length = 280
    truncates_text = True
    max_media = 4
    scopes = ["tweet.read", "tweet.write", "users.read", "offline.access"]

    def _client_auth(self) -> httpx.BasicAuth:
        return httpx.BasicAuth(self.client_id, self.client_secret)

    def build_auth_url(self, state: str, code_challenge: Optional[str] = None) -> str:
        if not code_challenge:
            raise PlatformError("not_configured", detail="twitter requires a PKCE code challenge")
        params = {
            "response_type": "code",
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "scope": " ".join(self.scopes),
            "state": state,
            "code_challenge": code_challenge,
            "code_challenge_method": "S256",
        }
        return str(httpx.URL(TWITTER_AUTH_URL).include_query_params(**params))

    async def exchange_code(self, code: str, code_verifier: Optional[str] = None) -> TokenSet:
        self._require_configured()
        resp = await self.http.post(
            TWITTER_TOKEN_URL,
            auth=self._client_auth(),
            data={
                "code": code,
                "grant_type": "authorization_code",
                "client_id": self.client_id,
                "redirect_uri": self.redirect_uri,
                "code_verifier": code_verifier,
            },
        )
        self._raise_for_token_response(resp)
        return self._token_set(self._json(resp, "token_exchange"))

    async def get_profile(self, access_token_enc: str) -> PlatformProfile:
        resp = await self.http.get(
            f"{TWITTER_API_BASE}/users/me",
            headers={"Authorization": f"Bearer {self._plain(access_token_enc)}"},
            params={"user.fields": "profile_image_url"},
        )
        self._raise_for_response(resp, "profile")
        with self._reading("profile"):
            data = self._json(resp, "profile")["data"]
            return PlatformProfile(
                platform_user_id=str(data["id"]),
                username=data.get("username"),
                display_name=data.get("name"),
                avatar_url=data.get("profile_image_url"),
            )

    async def refresh_token(self, account: SocialAccount) -> Optional[TokenSet]:
        self._require_configured()
        resp = await self.http.post(
            TWITTER_TOKEN_URL,
            auth=self._client_auth(),
            data={
                "grant_type": "refresh_token",
                "refresh_token": self._plain(account.refresh_token_enc),
                "client_id": self.client_id,
            },
        )
        self._raise_for_token_response(resp, refreshing=True)
        return self._token_set(self._json(resp, "refresh"))

    async def publish(self, account: SocialAccount, content: str, media: List[MediaItem]) -> PublishedPost:
        token = self._access_token(account)
        payload = {"text": self._prepare_text(content)}

        media_ids = []
        for item in media[: self.max_media]:
            media_ids.append(await self._upload_media(token, item))
        if media_ids:
            payload["media"] = {"media_ids": media_ids}

        resp = await self.http.post(
            f"{TWITTER_API_BASE}/tweets",
            headers={"Authorization": f"Bearer {token}"},
            json=payload,
        )
        self._raise_for_response(resp, "publish")
        with self._reading("publish"):
            tweet_id = str(self._json(resp, "publish")["data"]["id"])
        handle = account.username or "i/web"
        return PublishedPost(platform_post_id=tweet_id, platform_post_url=f"https://twitter.com/{handle}/status/{tweet_id}")

    async def delete_post(self, account: SocialAccount, platform_post_id: str) -> None:
        resp = await self.http.delete(
            f"{TWITTER_API_BASE}/tweets/{platform_post_id}",
            headers={"Authorization": f"Bearer {self._access_token(account)}"},
        )
        if resp.status_code == 404:
            return
        self._raise_for_response(resp, "delete")

    async def _upload_media(self, token: str, item: MediaItem) -> str:
        """Chunked upload: INIT, a single APPEND, FINALIZE."""
        body = await self.http.download(item.storage_url)
        headers = {"Authorization": f"Bearer {token}"}

        init = await self.http.post(
            TWITTER_UPLOAD_URL,
            headers=headers,
            data={"command": "INIT", "total_bytes": str(len(body)), "media_type": item.mime_type},
        )
        self._raise_for_response(init, "media_init")
        with self._reading("media_init"):
            media_id = str(self._json(init, "media_init")["media_id_string"])

        append = await self.http.post(
            TWITTER_UPLOAD_URL,
            headers=headers,
            data={
                "command": "APPEND",
                "media_id": media_id,
                "segment_index": "0",
                "media_data": base64.b64encode(body).decode(),
            },
        )
        self._raise_for_response(append, "media_append")

        finalize = await self.http.post(
            TWITTER_UPLOAD_URL,
            headers=headers,
            data={"command": "FINALIZE", "media_id": media_id},
        )
        self._raise_for_response(finalize, "media_finalize")
        return media_id
