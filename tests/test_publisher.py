import uuid
from datetime import timedelta

import pytest

from conftest import NOW
from social_publisher.errors import AuthorizationError, ConflictError, PlatformError
from social_publisher.infrastructure.posts_repo import PostsRepository
from social_publisher.models.post import PostStatus, PublishResult, ResultStatus, SocialPost
from social_publisher.services.publisher import PostPublisher, compute_post_status, text_for


def result(account_id, status):
    return PublishResult(post_id=uuid.uuid4(), account_id=account_id, platform="twitter", status=status)


def test_compute_post_status():
    a, b = uuid.uuid4(), uuid.uuid4()
    assert compute_post_status([], []) == PostStatus.FAILED
    assert compute_post_status([a], []) == PostStatus.PUBLISHING
    assert compute_post_status([a, b], [result(a, ResultStatus.SUCCESS), result(b, ResultStatus.SUCCESS)]) == PostStatus.PUBLISHED
    assert compute_post_status([a, b], [result(a, ResultStatus.SUCCESS), result(b, ResultStatus.FAILED)]) == PostStatus.PARTIALLY_FAILED
    assert compute_post_status([a, b], [result(a, ResultStatus.FAILED), result(b, ResultStatus.FAILED)]) == PostStatus.FAILED
    assert compute_post_status([a, b], [result(a, ResultStatus.SUCCESS), result(b, ResultStatus.PENDING)]) == PostStatus.PUBLISHING
    assert compute_post_status([a, b], [result(a, ResultStatus.RETRACTED), result(b, ResultStatus.SUCCESS)]) == PostStatus.PUBLISHED


def test_text_for_prefers_platform_variant():
    post = SocialPost(content="base", content_variants={"twitter": "short"})
    assert text_for(post, "twitter") == "short"
    assert text_for(post, "linkedin") == "base"


async def test_manual_publish_by_non_owner_creates_nothing(session, user, other_user, adapters, make_account, make_post):
    a = await make_account(user, "twitter")
    post = await make_post(user, accounts=[a], status=PostStatus.DRAFT)

    with pytest.raises(AuthorizationError):
        await PostPublisher(session, adapter_factory=adapters).publish_owned(post.id, other_user.id, now=NOW)

    assert await PostsRepository(session).list_results(post.id) == []
    assert adapters.total_publish_calls == 0
    assert (await PostsRepository(session).get_by_id(post.id)).status == PostStatus.DRAFT


async def test_manual_publish_draft(session, user, adapters, make_account, make_post):
    a = await make_account(user, "twitter")
    post = await make_post(user, accounts=[a], status=PostStatus.DRAFT, scheduled_at=NOW + timedelta(days=3))

    outcome = await PostPublisher(session, adapter_factory=adapters).publish_owned(post.id, user.id, now=NOW)

    assert outcome.status == PostStatus.PUBLISHED
    assert [r.status for r in outcome.results] == [ResultStatus.SUCCESS]
    assert len(adapters("twitter").publish_calls) == 1


async def test_manual_publish_of_published_post_makes_no_calls(session, user, adapters, make_account, make_post):
    a = await make_account(user, "twitter")
    post = await make_post(user, accounts=[a])
    publisher = PostPublisher(session, adapter_factory=adapters)
    await publisher.publish_owned(post.id, user.id, now=NOW)

    outcome = await publisher.publish_owned(post.id, user.id, now=NOW + timedelta(minutes=1))

    assert outcome.status == PostStatus.PUBLISHED
    assert len(adapters("twitter").publish_calls) == 1


async def test_manual_retry_only_touches_failed_accounts(session, user, adapters, make_account, make_post):
    a = await make_account(user, "twitter")
    b = await make_account(user, "linkedin")
    adapters("linkedin").failures[b.id] = PlatformError("content_rejected")
    post = await make_post(user, accounts=[a, b])
    publisher = PostPublisher(session, adapter_factory=adapters)

    first = await publisher.publish_owned(post.id, user.id, now=NOW)
    assert first.status == PostStatus.PARTIALLY_FAILED

    del adapters("linkedin").failures[b.id]
    second = await publisher.publish_owned(post.id, user.id, now=NOW + timedelta(minutes=5))

    assert second.status == PostStatus.PUBLISHED
    assert len(adapters("twitter").publish_calls) == 1
    assert len(adapters("linkedin").publish_calls) == 2
    retried = {r.account_id: r for r in second.results}[b.id]
    assert retried.attempt_count == 1
    assert retried.error_message is None


async def test_manual_publish_conflicts_with_live_claim(session, user, adapters, make_account, make_post):
    a = await make_account(user, "twitter")
    post = await make_post(user, accounts=[a], status=PostStatus.PUBLISHING, claimed_at=NOW - timedelta(seconds=10))

    with pytest.raises(ConflictError):
        await PostPublisher(session, adapter_factory=adapters).publish_owned(post.id, user.id, now=NOW)
    assert adapters.total_publish_calls == 0


async def test_publish_post_skips_successful_results(session, user, adapters, make_account, make_post):
    a = await make_account(user, "twitter")
    post = await make_post(user, accounts=[a], status=PostStatus.PUBLISHING)
    posts = PostsRepository(session)
    await posts.save_result(PublishResult(post_id=post.id, account_id=a.id, platform="twitter", status=ResultStatus.SUCCESS))

    status = await PostPublisher(session, adapter_factory=adapters).publish_post(post, now=NOW)

    assert status == PostStatus.PUBLISHED
    assert adapters.total_publish_calls == 0


async def test_retract_deletes_published_copies(session, user, other_user, adapters, make_account, make_post):
    a = await make_account(user, "twitter")
    b = await make_account(user, "linkedin")
    post = await make_post(user, accounts=[a, b])
    publisher = PostPublisher(session, adapter_factory=adapters)
    await publisher.publish_owned(post.id, user.id, now=NOW)
    adapters("linkedin").delete_error = PlatformError("platform_unavailable", transient=True)

    with pytest.raises(AuthorizationError):
        await publisher.retract_owned(post.id, other_user.id)

    outcome = await publisher.retract_owned(post.id, user.id)

    assert outcome.retracted == [a.id]
    assert [(f.account_id, f.reason_code) for f in outcome.failed] == [(b.id, "platform_unavailable")]
    assert adapters("twitter").deleted == ["twitter-1"]
    statuses = {r.account_id: r.status for r in await PostsRepository(session).list_results(post.id)}
    assert statuses == {a.id: ResultStatus.RETRACTED, b.id: ResultStatus.SUCCESS}

    # retracted copies are neither deleted twice nor republished
    adapters("linkedin").delete_error = None
    again = await publisher.retract_owned(post.id, user.id)
    assert again.retracted == [b.id]
    assert adapters("twitter").deleted == ["twitter-1"]
    calls = adapters.total_publish_calls
    await publisher.publish_owned(post.id, user.id, now=NOW)
    assert adapters.total_publish_calls == calls


async def test_retract_conflicts_with_live_claim(session, user, adapters, make_account, make_post):
    a = await make_account(user, "twitter")
    post = await make_post(user, accounts=[a], status=PostStatus.PUBLISHING, claimed_at=NOW)
    with pytest.raises(ConflictError):
        await PostPublisher(session, adapter_factory=adapters).retract_owned(post.id, user.id)
