# social_publisher/platforms/facebook.py
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

GRAPH_VERSION = "v18.0"
FACEBOOK_AUTH_URL = f"https://www.facebook.com/{GRAPH_VERSION}/dialog/oauth"
GRAPH_API_BASE = f"https://graph.facebook.com/{GRAPH_VERSION}"

# https://developers.facebook.com/docs/graph-api/guides/error-handling
GRAPH_TOKEN_ERRORS = {102, 190, 458, 459, 460, 463, 464, 467}
GRAPH_RATE_LIMIT_ERRORS = {4, 17, 32, 341, 613}
GRAPH_TRANSIENT_ERRORS = {1, 2}


class GraphErrorsMixin:
    """Graph APIs report failures in the body; the HTTP status alone is not enough."""

    def _raise_for_response(self, response: httpx.Response, action: str) -> None:
        if response.status_code < 400:
            return
        try:
            error = response.json().get("error") or {}
        except (ValueError, AttributeError):
            error = {}
        code = error.get("code")
        detail = f"{self.platform.value} {action} failed ({response.status_code}): {error.get('message') or response.text[:500]}"
        if code in GRAPH_TOKEN_ERRORS:
            raise PlatformError("token_revoked", revoked=True, detail=detail)
        if code in GRAPH_RATE_LIMIT_ERRORS:
            raise PlatformError("rate_limited", transient=True, detail=detail)
        if code in GRAPH_TRANSIENT_ERRORS or error.get("is_transient"):
            raise PlatformError("platform_unavailable", transient=True, detail=detail)
        super()._raise_for_response(response, action)


class FacebookAdapter(GraphErrorsMixin, PlatformAdapter):
    """Facebook: Graph API login, long-lived user tokens, feed and photo posts."""

    platform = Platform.FACEBOOK
    max_text_length = 63206
    max_media = 1
    scopes = ["public_profile", "pages_show_list", "pages_manage_posts"]

    def build_auth_url(self, state: str, code_challenge: Optional[str] = None) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "state": state,
            "scope": ",".join(self.scopes),
            "response_type": "code",
        }
        return str(httpx.URL(FACEBOOK_AUTH_URL).include_query_params(**params))

    async def exchange_code(self, code: str, code_verifier: Optional[str] = None) -> TokenSet:
        self._require_configured()
        resp = await self.http.get(
            f"{GRAPH_API_BASE}/oauth/access_token",
            params={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "redirect_uri": self.redirect_uri,
                "code": code,
            },
        )
        self._raise_for_token_response(resp)
        short_lived = self._json(resp, "token_exchange").get("access_token")
        if not short_lived:
            raise PlatformError("exchange_failed", detail="facebook returned no access token")

        # swap the ~1h token for a ~60 day one
        resp = await self.http.get(
            f"{GRAPH_API_BASE}/oauth/access_token",
            params={
                "grant_type": "fb_exchange_token",
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "fb_exchange_token": short_lived,
            },
        )
        self._raise_for_token_response(resp)
        return self._token_set(self._json(resp, "token_exchange"))

    async def get_profile(self, access_token_enc: str) -> PlatformProfile:
        resp = await self.http.get(
            f"{GRAPH_API_BASE}/me",
            params={"fields": "id,name,picture", "access_token": self._plain(access_token_enc)},
        )
        self._raise_for_response(resp, "profile")
        data = self._json(resp, "profile")
        with self._reading("profile"):
            picture = ((data.get("picture") or {}).get("data") or {}).get("url")
            return PlatformProfile(
                platform_user_id=str(data["id"]),
                username=data.get("name"),
                display_name=data.get("name"),
                avatar_url=picture,
            )

    async def publish(self, account: SocialAccount, content: str, media: List[MediaItem]) -> PublishedPost:
        token = self._access_token(account)
        message = self._prepare_text(content)
        if media:
            resp = await self.http.post(
                f"{GRAPH_API_BASE}/{account.platform_user_id}/photos",
                data={"url": media[0].storage_url, "caption": message, "access_token": token},
            )
        else:
            resp = await self.http.post(
                f"{GRAPH_API_BASE}/{account.platform_user_id}/feed",
                data={"message": message, "access_token": token},
            )
        self._raise_for_response(resp, "publish")
        data = self._json(resp, "publish")
        with self._reading("publish"):
            post_id = str(data.get("post_id") or data["id"])
        return PublishedPost(platform_post_id=post_id, platform_post_url=f"https://www.facebook.com/{post_id}")

    async def delete_post(self, account: SocialAccount, platform_post_id: str) -> None:
        resp = await self.http.delete(
            f"{GRAPH_API_BASE}/{platform_post_id}",
            params={"access_token": self._access_token(account)},
        )
        self._raise_for_response(resp, "delete")
