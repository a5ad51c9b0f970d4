import json
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from social_publisher.errors import PlatformError, ValidationError
from social_publisher.infrastructure.http_client import ExternalAPIClient
from social_publisher.models.media import MediaItem
from social_publisher.models.social_account import SocialAccount
from social_publisher.platforms.facebook import FacebookAdapter
from social_publisher.platforms.instagram import InstagramAdapter
from social_publisher.platforms.linkedin import LinkedInAdapter
from social_publisher.platforms.registry import get_adapter, parse_platform
from social_publisher.platforms.twitter import TwitterAdapter
from social_publisher.security import decrypt_token, encrypt_token


def make_adapter(cls, handler):
    http = ExternalAPIClient(timeout=5, transport=httpx.MockTransport(handler))
    return cls(client_id="cid", client_secret="csecret", redirect_uri="https://app.test/cb", http=http)


def account_for(platform, **fields):
    fields.setdefault("access_token_enc", encrypt_token("plain-access"))
    return SocialAccount(platform=platform, platform_user_id="12345", username="someone", **fields)


def test_parse_platform_rejects_unknown():
    with pytest.raises(ValidationError):
        parse_platform("myspace")
    assert isinstance(get_adapter("linkedin"), LinkedInAdapter)


def test_twitter_auth_url_carries_pkce_challenge():
    adapter = make_adapter(TwitterAdapter, lambda r: httpx.Response(200))
    url = urlparse(adapter.build_auth_url("state-1", "challenge-1"))
    params = parse_qs(url.query)
    assert params["state"] == ["state-1"]
    assert params["code_challenge"] == ["challenge-1"]
    assert params["code_challenge_method"] == ["S256"]
    assert "offline.access" in params["scope"][0]


def test_linkedin_auth_url_has_no_pkce():
    adapter = make_adapter(LinkedInAdapter, lambda r: httpx.Response(200))
    params = parse_qs(urlparse(adapter.build_auth_url("state-2")).query)
    assert params["state"] == ["state-2"]
    assert "code_challenge" not in params


async def test_twitter_exchange_sends_verifier_and_encrypts_tokens():
    seen = {}

    def handler(request):
        seen["form"] = parse_qs(request.content.decode())
        seen["auth"] = request.headers["authorization"]
        return httpx.Response(200, json={"access_token": "at-1", "refresh_token": "rt-1", "expires_in": 7200})

    adapter = make_adapter(TwitterAdapter, handler)
    tokens = await adapter.exchange_code("code-1", "verifier-1")

    assert seen["form"]["code_verifier"] == ["verifier-1"]
    assert seen["auth"].startswith("Basic ")
    assert tokens.access_token_enc != "at-1"
    assert decrypt_token(tokens.access_token_enc) == "at-1"
    assert decrypt_token(tokens.refresh_token_enc) == "rt-1"
    assert tokens.expires_at is not None


async def test_exchange_rejected_code_is_exchange_failed():
    adapter = make_adapter(LinkedInAdapter, lambda r: httpx.Response(400, json={"error": "invalid_grant"}))
    with pytest.raises(PlatformError) as exc:
        await adapter.exchange_code("bad")
    assert exc.value.reason == "exchange_failed"
    assert not exc.value.transient


async def test_twitter_publish_truncates_long_text():
    sent = {}

    def handler(request):
        sent["body"] = json.loads(request.content)
        sent["auth"] = request.headers["authorization"]
        return httpx.Response(201, json={"data": {"id": "999"}})

    adapter = make_adapter(TwitterAdapter, handler)
    published = await adapter.publish(account_for("twitter"), "x" * 400, [])

    assert len(sent["body"]["text"]) == 280
    assert sent["body"]["text"].endswith("...")
    assert sent["auth"] == "Bearer plain-access"
    assert published.platform_post_id == "999"
    assert published.platform_post_url == "https://twitter.com/someone/status/999"


@pytest.mark.parametrize(
    "status, reason, transient, revoked",
    [
        (429, "rate_limited", True, False),
        (503, "platform_unavailable", True, False),
        (401, "token_revoked", False, True),
        (403, "forbidden", False, False),
        (400, "content_rejected", False, False),
    ],
)
async def test_publish_error_classification(status, reason, transient, revoked):
    adapter = make_adapter(TwitterAdapter, lambda r: httpx.Response(status, text="nope"))
    with pytest.raises(PlatformError) as exc:
        await adapter.publish(account_for("twitter"), "hi", [])
    assert exc.value.reason == reason
    assert exc.value.transient is transient
    assert exc.value.revoked is revoked
    assert "nope" not in exc.value.public_message


async def test_network_failure_is_transient():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    adapter = make_adapter(TwitterAdapter, handler)
    with pytest.raises(PlatformError) as exc:
        await adapter.publish(account_for("twitter"), "hi", [])
    assert exc.value.reason == "network_error"
    assert exc.value.transient


async def test_unreadable_stored_token_is_revoking():
    adapter = make_adapter(TwitterAdapter, lambda r: httpx.Response(201, json={"data": {"id": "1"}}))
    with pytest.raises(PlatformError) as exc:
        await adapter.publish(account_for("twitter", access_token_enc="garbage"), "hi", [])
    assert exc.value.reason == "token_unreadable"
    assert exc.value.revoked


async def test_twitter_refresh_rejected_means_revoked():
    adapter = make_adapter(TwitterAdapter, lambda r: httpx.Response(400, json={"error": "invalid_request"}))
    account = account_for("twitter", refresh_token_enc=encrypt_token("rt"))
    assert adapter.can_refresh(account)
    with pytest.raises(PlatformError) as exc:
        await adapter.refresh_token(account)
    assert exc.value.reason == "token_revoked"
    assert exc.value.revoked


async def test_linkedin_rejects_text_over_limit_and_has_no_refresh():
    adapter = make_adapter(LinkedInAdapter, lambda r: httpx.Response(201, headers={"x-restli-id": "urn:li:share:1"}))
    account = account_for("linkedin", refresh_token_enc=encrypt_token("rt"))
    assert await adapter.refresh_token(account) is None
    assert not adapter.can_refresh(account)
    with pytest.raises(PlatformError) as exc:
        await adapter.publish(account, "y" * 3001, [])
    assert exc.value.reason == "content_rejected"

    published = await adapter.publish(account, "short", [])
    assert published.platform_post_id == "urn:li:share:1"


async def test_facebook_graph_token_error_is_revoked():
    body = {"error": {"message": "Error validating access token", "code": 190}}
    adapter = make_adapter(FacebookAdapter, lambda r: httpx.Response(400, json=body))
    with pytest.raises(PlatformError) as exc:
        await adapter.publish(account_for("facebook"), "hello", [])
    assert exc.value.reason == "token_revoked"
    assert exc.value.revoked


async def test_facebook_graph_rate_limit_is_transient():
    body = {"error": {"message": "Application request limit reached", "code": 4}}
    adapter = make_adapter(FacebookAdapter, lambda r: httpx.Response(400, json=body))
    with pytest.raises(PlatformError) as exc:
        await adapter.publish(account_for("facebook"), "hello", [])
    assert exc.value.reason == "rate_limited"
    assert exc.value.transient


async def test_facebook_feed_post():
    def handler(request):
        assert request.url.path.endswith("/12345/feed")
        return httpx.Response(200, json={"id": "12345_678"})

    adapter = make_adapter(FacebookAdapter, handler)
    published = await adapter.publish(account_for("facebook"), "hello", [])
    assert published.platform_post_id == "12345_678"


async def test_instagram_requires_an_image():
    adapter = make_adapter(InstagramAdapter, lambda r: httpx.Response(200, json={"id": "1"}))
    with pytest.raises(PlatformError) as exc:
        await adapter.publish(account_for("instagram"), "caption", [])
    assert exc.value.reason == "media_required"
    assert not exc.value.transient


async def test_instagram_container_then_publish():
    calls = []

    def handler(request):
        calls.append(request.url.path)
        if request.url.path.endswith("/media"):
            return httpx.Response(200, json={"id": "container-1"})
        assert parse_qs(request.content.decode())["creation_id"] == ["container-1"]
        return httpx.Response(200, json={"id": "ig-post-1"})

    image = MediaItem(file_name="a.png", storage_key="k", storage_url="https://media.test/a.png", mime_type="image/png", size_bytes=1)
    adapter = make_adapter(InstagramAdapter, handler)
    published = await adapter.publish(account_for("instagram"), "caption", [image])
    assert calls == ["/12345/media", "/12345/media_publish"]
    assert published.platform_post_id == "ig-post-1"


async def test_unconfigured_platform():
    adapter = LinkedInAdapter(client_id=None, client_secret=None, http=ExternalAPIClient(transport=httpx.MockTransport(lambda r: httpx.Response(200))))
    adapter.client_id = adapter.client_secret = None
    with pytest.raises(PlatformError) as exc:
        await adapter.exchange_code("code")
    assert exc.value.reason == "not_configured"


def test_auth_url_escapes_redirect_and_scope():
    adapter = make_adapter(FacebookAdapter, lambda r: httpx.Response(200))
    adapter.redirect_uri = "https://app.test/cb?next=/accounts&x=1"
    url = httpx.URL(adapter.build_auth_url("state&evil=1"))
    assert url.params["state"] == "state&evil=1"
    assert url.params["redirect_uri"] == "https://app.test/cb?next=/accounts&x=1"
    assert "evil" not in url.params


async def test_twitter_token_request_uses_basic_client_auth():
    seen = {}

    def handler(request):
        seen["auth"] = request.headers["authorization"]
        return httpx.Response(200, json={"access_token": "at-2"})

    adapter = make_adapter(TwitterAdapter, handler)
    adapter.client_secret = "sec:ret/with+chars"
    await adapter.refresh_token(account_for("twitter", refresh_token_enc=encrypt_token("rt")))

    expected = httpx.BasicAuth("cid", "sec:ret/with+chars")
    request = next(expected.auth_flow(httpx.Request("POST", "https://api.twitter.com/2/oauth2/token")))
    assert seen["auth"] == request.headers["authorization"]


@pytest.mark.parametrize(
    "cls, platform, response",
    [
        (TwitterAdapter, "twitter", httpx.Response(201, json={"errors": []})),
        (TwitterAdapter, "twitter", httpx.Response(201, text="<html>ok</html>")),
        (LinkedInAdapter, "linkedin", httpx.Response(201)),
        (FacebookAdapter, "facebook", httpx.Response(200, json=["12345_678"])),
    ],
)
async def test_malformed_success_body_is_permanent(cls, platform, response):
    adapter = make_adapter(cls, lambda r: response)
    with pytest.raises(PlatformError) as exc:
        await adapter.publish(account_for(platform), "hello", [])
    assert exc.value.reason == "unexpected_response"
    assert not exc.value.transient
    assert not exc.value.revoked


async def test_malformed_profile_body_is_permanent():
    adapter = make_adapter(TwitterAdapter, lambda r: httpx.Response(200, json={"data": {"username": "x"}}))
    with pytest.raises(PlatformError) as exc:
        await adapter.get_profile(encrypt_token("plain-access"))
    assert exc.value.reason == "unexpected_response"


async def test_twitter_delete_post():
    calls = []

    def handler(request):
        calls.append((request.method, request.url.path, request.headers["authorization"]))
        return httpx.Response(200, json={"data": {"deleted": True}})

    adapter = make_adapter(TwitterAdapter, handler)
    await adapter.delete_post(account_for("twitter"), "999")
    assert calls == [("DELETE", "/2/tweets/999", "Bearer plain-access")]


async def test_delete_of_already_gone_post_is_quiet():
    adapter = make_adapter(LinkedInAdapter, lambda r: httpx.Response(404, json={"message": "not found"}))
    await adapter.delete_post(account_for("linkedin"), "urn:li:share:1")


async def test_facebook_delete_post_sends_token_as_param():
    seen = {}

    def handler(request):
        seen["method"] = request.method
        seen["path"] = request.url.path
        seen["token"] = request.url.params["access_token"]
        return httpx.Response(200, json={"success": True})

    adapter = make_adapter(FacebookAdapter, handler)
    await adapter.delete_post(account_for("facebook"), "12345_678")
    assert seen["method"] == "DELETE"
    assert seen["path"].endswith("/12345_678")
    assert seen["token"] == "plain-access"


async def test_delete_failure_is_classified():
    adapter = make_adapter(TwitterAdapter, lambda r: httpx.Response(401, text="expired"))
    with pytest.raises(PlatformError) as exc:
        await adapter.delete_post(account_for("twitter"), "999")
    assert exc.value.revoked


async def test_instagram_delete_not_supported():
    adapter = make_adapter(InstagramAdapter, lambda r: httpx.Response(200))
    with pytest.raises(PlatformError) as exc:
        await adapter.delete_post(account_for("instagram"), "ig-post-1")
    assert exc.value.reason == "not_supported"


async def test_validate_token():
    status = {"code": 200}

    def handler(request):
        if status["code"] == 200:
            return httpx.Response(200, json={"data": {"id": "12345", "username": "someone"}})
        return httpx.Response(status["code"], text="nope")

    adapter = make_adapter(TwitterAdapter, handler)
    account = account_for("twitter")
    assert await adapter.validate_token(account) is True

    status["code"] = 401
    assert await adapter.validate_token(account) is False

    status["code"] = 503
    with pytest.raises(PlatformError) as exc:
        await adapter.validate_token(account)
    assert exc.value.transient
