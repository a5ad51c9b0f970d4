from datetime import timedelta

import pytest

from conftest import NOW, FakeAdapter
from social_publisher.errors import PlatformError
from social_publisher.infrastructure.accounts_repo import AccountsRepository
from social_publisher.platforms.base import TokenSet
from social_publisher.security import decrypt_token, encrypt_token
from social_publisher.services.token_lifecycle import TokenState, ensure_fresh_token, token_state


async def test_token_state_transitions(user, make_account):
    account = await make_account(user)
    assert token_state(account, NOW) == TokenState.VALID

    account.token_expires_at = NOW + timedelta(hours=2)
    assert token_state(account, NOW) == TokenState.VALID

    account.token_expires_at = NOW + timedelta(seconds=120)
    assert token_state(account, NOW, refresh_window=300) == TokenState.NEEDS_REFRESH

    account.token_expires_at = NOW - timedelta(seconds=1)
    assert token_state(account, NOW) == TokenState.EXPIRED

    account.is_active = False
    assert token_state(account, NOW) == TokenState.REVOKED


async def test_valid_token_is_not_refreshed(session, user, make_account):
    adapter = FakeAdapter(supports_refresh=True)
    account = await make_account(user, refresh_token_enc=encrypt_token("rt"))
    assert await ensure_fresh_token(account, adapter, AccountsRepository(session), NOW) is account
    assert adapter.refresh_calls == 0


async def test_expiring_token_is_refreshed_and_persisted(session, user, make_account):
    adapter = FakeAdapter(supports_refresh=True)
    adapter.refresh_result = TokenSet(access_token_enc=encrypt_token("new-access"), expires_at=NOW + timedelta(hours=2))
    account = await make_account(user, refresh_token_enc=encrypt_token("rt"), token_expires_at=NOW + timedelta(seconds=60))

    refreshed = await ensure_fresh_token(account, adapter, AccountsRepository(session), NOW)

    assert adapter.refresh_calls == 1
    assert decrypt_token(refreshed.access_token_enc) == "new-access"
    # refresh token kept when the platform does not rotate it
    assert decrypt_token(refreshed.refresh_token_enc) == "rt"
    stored = await AccountsRepository(session).get_by_id(account.id)
    assert stored.token_expires_at == NOW + timedelta(hours=2)


async def test_expired_without_refresh_is_token_expired(session, user, make_account):
    adapter = FakeAdapter(supports_refresh=False)
    account = await make_account(user, token_expires_at=NOW - timedelta(minutes=5))
    with pytest.raises(PlatformError) as exc:
        await ensure_fresh_token(account, adapter, AccountsRepository(session), NOW)
    assert exc.value.reason == "token_expired"
    assert exc.value.revoked


async def test_needs_refresh_without_refresh_uses_current_token(session, user, make_account):
    adapter = FakeAdapter(supports_refresh=False)
    account = await make_account(user, token_expires_at=NOW + timedelta(seconds=30))
    assert await ensure_fresh_token(account, adapter, AccountsRepository(session), NOW) is account


async def test_transient_refresh_failure_falls_back_while_still_valid(session, user, make_account):
    adapter = FakeAdapter(supports_refresh=True)
    adapter.refresh_error = PlatformError("platform_unavailable", transient=True)
    account = await make_account(user, refresh_token_enc=encrypt_token("rt"), token_expires_at=NOW + timedelta(seconds=30))
    assert await ensure_fresh_token(account, adapter, AccountsRepository(session), NOW) is account

    account.token_expires_at = NOW - timedelta(seconds=30)
    with pytest.raises(PlatformError) as exc:
        await ensure_fresh_token(account, adapter, AccountsRepository(session), NOW)
    assert exc.value.transient


async def test_revoked_refresh_propagates(session, user, make_account):
    adapter = FakeAdapter(supports_refresh=True)
    adapter.refresh_error = PlatformError("token_revoked", revoked=True)
    account = await make_account(user, refresh_token_enc=encrypt_token("rt"), token_expires_at=NOW - timedelta(seconds=1))
    with pytest.raises(PlatformError) as exc:
        await ensure_fresh_token(account, adapter, AccountsRepository(session), NOW)
    assert exc.value.reason == "token_revoked"


async def test_inactive_account_is_rejected(session, user, make_account):
    account = await make_account(user, is_active=False)
    with pytest.raises(PlatformError) as exc:
        await ensure_fresh_token(account, FakeAdapter(), AccountsRepository(session), NOW)
    assert exc.value.reason == "account_inactive"
