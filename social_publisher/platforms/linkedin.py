# social_publisher/platforms/linkedin.py
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

LINKEDIN_AUTH_URL = "https://www.linkedin.com/oauth/v2/authorization"
LINKEDIN_TOKEN_URL = "https://www.linkedin.com/oauth/v2/accessToken"
LINKEDIN_API_BASE = "https://api.linkedin.com/v2"
RESTLI_HEADERS = {"X-Restli-Protocol-Version": "2.0.0"}


class LinkedInAdapter(PlatformAdapter):
    """LinkedIn: plain OAuth 2.0, no refresh tokens, UGC posts API."""

    platform = Platform.LINKEDIN
    max_text_length = 3000
    max_media = 9
    scopes = ["openid", "profile", "w_member_social", "email"]

    def build_auth_url(self, state: str, code_challenge: Optional[str] = None) -> str:
        params = {
            "response_type": "code",
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "scope": " ".join(self.scopes),
            "state": state,
        }
        return str(httpx.URL(LINKEDIN_AUTH_URL).include_query_params(**params))

    async def exchange_code(self, code: str, code_verifier: Optional[str] = None) -> TokenSet:
        self._require_configured()
        resp = await self.http.post(
            LINKEDIN_TOKEN_URL,
            data={
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self.redirect_uri,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
            },
        )
        self._raise_for_token_response(resp)
        return self._token_set(self._json(resp, "token_exchange"))

    async def get_profile(self, access_token_enc: str) -> PlatformProfile:
        resp = await self.http.get(
            f"{LINKEDIN_API_BASE}/userinfo",
            headers={"Authorization": f"Bearer {self._plain(access_token_enc)}"},
        )
        self._raise_for_response(resp, "profile")
        profile = self._json(resp, "profile")
        email = profile.get("email") or ""
        name = profile.get("name") or " ".join(p for p in (profile.get("given_name"), profile.get("family_name")) if p)
        with self._reading("profile"):
            subject = str(profile["sub"])
        return PlatformProfile(
            platform_user_id=subject,
            username=email.split("@")[0] if email else subject,
            display_name=name or None,
            avatar_url=profile.get("picture"),
        )

    async def refresh_token(self, account: SocialAccount) -> Optional[TokenSet]:
        # LinkedIn members must re-authenticate
        return None

    async def publish(self, account: SocialAccount, content: str, media: List[MediaItem]) -> PublishedPost:
        token = self._access_token(account)
        author = f"urn:li:person:{account.platform_user_id}"
        share = {
            "shareCommentary": {"text": self._prepare_text(content)},
            "shareMediaCategory": "IMAGE" if media else "NONE",
        }
        if media:
            share["media"] = [
                {"status": "READY", "media": await self._upload_media(token, author, item)}
                for item in media[: self.max_media]
            ]

        resp = await self.http.post(
            f"{LINKEDIN_API_BASE}/ugcPosts",
            headers={"Authorization": f"Bearer {token}", **RESTLI_HEADERS},
            json={
                "author": author,
                "lifecycleState": "PUBLISHED",
                "specificContent": {"com.linkedin.ugc.ShareContent": share},
                "visibility": {"com.linkedin.ugc.MemberNetworkVisibility": "PUBLIC"},
            },
        )
        self._raise_for_response(resp, "publish")
        post_id = resp.headers.get("x-restli-id")
        if not post_id:
            post_id = self._json(resp, "publish").get("id")
        if not post_id:
            raise PlatformError("unexpected_response", detail="linkedin publish returned no post id")
        return PublishedPost(platform_post_id=str(post_id), platform_post_url=f"https://www.linkedin.com/feed/update/{post_id}")

    async def delete_post(self, account: SocialAccount, platform_post_id: str) -> None:
        resp = await self.http.delete(
            f"{LINKEDIN_API_BASE}/ugcPosts/{platform_post_id}",
            headers={"Authorization": f"Bearer {self._access_token(account)}", **RESTLI_HEADERS},
        )
        if resp.status_code == 404:
            return
        self._raise_for_response(resp, "delete")

    async def _upload_media(self, token: str, owner: str, item: MediaItem) -> str:
        register = await self.http.post(
            f"{LINKEDIN_API_BASE}/assets",
            params={"action": "registerUpload"},
            headers={"Authorization": f"Bearer {token}", **RESTLI_HEADERS},
            json={
                "registerUploadRequest": {
                    "recipes": ["urn:li:digitalmediaRecipe:feedshare-image"],
                    "owner": owner,
                    "serviceRelationships": [
                        {"relationshipType": "OWNER", "identifier": "urn:li:userGeneratedContent"}
                    ],
                }
            },
        )
        self._raise_for_response(register, "media_register")
        with self._reading("media_register"):
            value = self._json(register, "media_register")["value"]
            upload_url = value["uploadMechanism"]["com.linkedin.digitalmedia.uploading.MediaUploadHttpRequest"]["uploadUrl"]
            asset = value["asset"]

        body = await self.http.download(item.storage_url)
        upload = await self.http.request(
            "PUT",
            upload_url,
            headers={"Authorization": f"Bearer {token}", "Content-Type": item.mime_type},
            content=body,
        )
        self._raise_for_response(upload, "media_upload")
        return asset
