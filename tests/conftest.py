import os

from cryptography.fernet import Fernet

# configuration is read at import time
os.environ.setdefault("TOKEN_ENCRYPTION_KEY", Fernet.generate_key().decode())
os.environ.setdefault("CRON_SECRET", "test-cron-secret")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ACCOUNTS_VIEW_URL", "/accounts/manage")
os.environ.setdefault("MEDIA_STORAGE_URL", "https://media.test/bucket")

import uuid
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import httpx
import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from jose import jwt
from sqlmodel.ext.asyncio.session import AsyncSession

from social_publisher import config
from social_publisher.UAA.models import User
from social_publisher.infrastructure.database import init_db
from social_publisher.infrastructure.http_client import ExternalAPIClient
from social_publisher.infrastructure.media_storage import MediaStorage, StoredObject
from social_publisher.infrastructure.posts_repo import PostsRepository
from social_publisher.models.media import MediaItem
from social_publisher.models.post import PostStatus, SocialPost
from social_publisher.models.social_account import SocialAccount
from social_publisher.platforms.base import (
    Platform,
    PlatformAdapter,
    PlatformProfile,
    PublishedPost,
    TokenSet,
)
from social_publisher.platforms.registry import parse_platform
from social_publisher.security import encrypt_token

NOW = datetime(2026, 3, 2, 12, 0, 0, tzinfo=timezone.utc)


def issue_access_token(subject: str, expires_in: timedelta = timedelta(minutes=15), token_type: str = "access") -> str:
    """Mint a token shaped like the identity provider's."""
    issued = datetime.now(timezone.utc)
    claims = {
        "sub": subject,
        "jti": str(uuid.uuid4()),
        "type": token_type,
        "iat": int(issued.timestamp()),
        "exp": int((issued + expires_in).timestamp()),
    }
    return jwt.encode(claims, config.SECRET_KEY, algorithm=config.ALGORITHM)


class FakeAdapter(PlatformAdapter):
    """In-memory adapter: records calls, fails per account id on demand."""

    platform = Platform.TWITTER

    def __init__(self, platform: str = "twitter", requires_pkce: bool = False, supports_refresh: bool = False):
        self.platform = Platform(platform)
        self.requires_pkce = requires_pkce
        self.supports_refresh = supports_refresh
        super().__init__(client_id="client-id", client_secret="client-secret",
                         redirect_uri="https://app.test/callback", http=ExternalAPIClient())
        self.publish_calls: List[tuple] = []
        self.exchanges: List[tuple] = []
        self.failures: Dict[uuid.UUID, Exception] = {}
        self.refresh_calls = 0
        self.refresh_result: Optional[TokenSet] = None
        self.refresh_error: Optional[Exception] = None
        self.profile_error: Optional[Exception] = None
        self.deleted: List[str] = []
        self.delete_error: Optional[Exception] = None
        self.profile = PlatformProfile(platform_user_id="pu-1", username="handle", display_name="Handle")

    def build_auth_url(self, state: str, code_challenge: Optional[str] = None) -> str:
        url = f"https://auth.test/{self.platform.value}/authorize?state={state}"
        if code_challenge:
            url += f"&code_challenge={code_challenge}"
        return url

    async def exchange_code(self, code: str, code_verifier: Optional[str] = None) -> TokenSet:
        self.exchanges.append((code, code_verifier))
        return TokenSet(access_token_enc=encrypt_token(f"access-{code}"), refresh_token_enc=encrypt_token(f"refresh-{code}"))

    async def get_profile(self, access_token_enc: str) -> PlatformProfile:
        if self.profile_error is not None:
            raise self.profile_error
        return self.profile

    async def refresh_token(self, account: SocialAccount) -> Optional[TokenSet]:
        self.refresh_calls += 1
        if self.refresh_error is not None:
            raise self.refresh_error
        return self.refresh_result

    async def publish(self, account: SocialAccount, content: str, media: List[MediaItem]) -> PublishedPost:
        self.publish_calls.append((account.id, content, [m.id for m in media]))
        error = self.failures.get(account.id)
        if error is not None:
            raise error
        post_id = f"{self.platform.value}-{len(self.publish_calls)}"
        return PublishedPost(platform_post_id=post_id, platform_post_url=f"https://{self.platform.value}.test/{post_id}")

    async def delete_post(self, account: SocialAccount, platform_post_id: str) -> None:
        if self.delete_error is not None:
            raise self.delete_error
        self.deleted.append(platform_post_id)


class FakeAdapterFactory:
    def __init__(self):
        self.adapters: Dict[str, FakeAdapter] = {}

    def __call__(self, platform: str) -> FakeAdapter:
        platform = parse_platform(platform).value
        if platform not in self.adapters:
            self.adapters[platform] = FakeAdapter(platform)
        return self.adapters[platform]

    @property
    def total_publish_calls(self) -> int:
        return sum(len(a.publish_calls) for a in self.adapters.values())


class FakeStateStore:
    """Mimics redis SET NX EX."""

    def __init__(self):
        self.values: Dict[str, str] = {}
        self.ttls: Dict[str, int] = {}

    async def set(self, key, value, nx=False, ex=None):
        if nx and key in self.values:
            return None
        self.values[key] = value
        self.ttls[key] = ex
        return True


class FakeMediaStorage(MediaStorage):
    def __init__(self):
        self.objects: Dict[str, bytes] = {}
        self.deleted: List[str] = []

    async def upload(self, key: str, data: bytes, content_type: str) -> StoredObject:
        self.objects[key] = data
        return StoredObject(key=key, url=f"https://media.test/bucket/{key}")

    async def delete(self, key: str) -> None:
        self.objects.pop(key, None)
        self.deleted.append(key)


@pytest.fixture
async def engine(tmp_path):
    # file database: separate sessions get separate connections, like production
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await init_db(bind=engine)
    yield engine
    await engine.dispose()


@pytest.fixture
async def session(engine):
    async with AsyncSession(engine, expire_on_commit=False) as session:
        yield session


async def _add_user(session, email, username):
    user = User(email=email, username=username)
    session.add(user)
    await session.commit()
    return user


@pytest.fixture
async def user(session):
    return await _add_user(session, "owner@example.com", "owner")


@pytest.fixture
async def other_user(session):
    return await _add_user(session, "other@example.com", "other")


@pytest.fixture
def adapters():
    return FakeAdapterFactory()


@pytest.fixture
def state_store():
    return FakeStateStore()


@pytest.fixture
def media_storage():
    return FakeMediaStorage()


@pytest.fixture
def make_account(session):
    async def _make(owner, platform="twitter", platform_user_id=None, **fields):
        account = SocialAccount(
            user_id=owner.id,
            platform=platform,
            platform_user_id=platform_user_id or uuid.uuid4().hex[:10],
            username=f"{platform}_user",
            access_token_enc=encrypt_token(f"{platform}-access"),
            **fields,
        )
        session.add(account)
        await session.commit()
        return account

    return _make


@pytest.fixture
def make_media(session):
    async def _make(owner, mime_type="image/png"):
        item = MediaItem(
            user_id=owner.id,
            file_name="photo.png",
            storage_key=f"{owner.id}/photo.png",
            storage_url=f"https://media.test/bucket/{owner.id}/photo.png",
            mime_type=mime_type,
            size_bytes=4,
        )
        session.add(item)
        await session.commit()
        return item

    return _make


@pytest.fixture
def make_post(session):
    async def _make(owner, accounts=(), media=(), status=PostStatus.SCHEDULED, scheduled_at=None, **fields):
        post = SocialPost(user_id=owner.id, content=fields.pop("content", "hello world"),
                          status=status, scheduled_at=scheduled_at, **fields)
        return await PostsRepository(session).create(post, [a.id for a in accounts], [m.id for m in media])

    return _make


@pytest.fixture
def auth_headers():
    def _headers(owner):
        return {"Authorization": f"Bearer {issue_access_token(str(owner.id))}"}

    return _headers


@pytest.fixture
async def client(engine, adapters, state_store, media_storage):
    from social_publisher.dependencies.db import get_session_dep
    from social_publisher.dependencies.services import get_adapter_factory, get_media_storage, get_state_store
    from social_publisher.main import app

    async def _session_override():
        async with AsyncSession(engine, expire_on_commit=False) as s:
            yield s

    app.dependency_overrides[get_session_dep] = _session_override
    app.dependency_overrides[get_adapter_factory] = lambda: adapters
    app.dependency_overrides[get_state_store] = lambda: state_store
    app.dependency_overrides[get_media_storage] = lambda: media_storage
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c
    app.dependency_overrides.clear()
