"""Tests for opening, reusing and merging pull requests."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from src.privacy_gateway.protocols import PullRequestInfo
from src.privacy_gateway.results import Err, ErrorKind, Ok
from src.privacy_gateway.services.change_publisher import put_document
from src.privacy_gateway.services.github_content_store import GitHubAPIError
from src.privacy_gateway.services.review_requests import (
    merge_review_request,
    open_or_reuse_review_request,
)

BRANCH = "update/acme-2024-01-01T00-00-00-000Z"
META_PATH = "data/tenants/acme/meta.json"


@pytest.fixture
async def changed_store(store):
    await store.create_ref(BRANCH, "abc123")
    await put_document(store, BRANCH, META_PATH, {"orgId": "acme"}, "meta")
    return store


@pytest.mark.asyncio
async def test_open_creates_pull_request(changed_store):
    result = await open_or_reuse_review_request(
        changed_store, BRANCH, "main", "Title", "Body"
    )

    assert isinstance(result, Ok)
    assert result.value.reused is False
    assert result.value.url.endswith("/pull/1")
    assert changed_store.open_pull_request_count() == 1


@pytest.mark.asyncio
async def test_open_reuses_existing_pull_request(changed_store):
    first = await open_or_reuse_review_request(
        changed_store, BRANCH, "main", "Title", "Body"
    )
    count_before = changed_store.open_pull_request_count()

    second = await open_or_reuse_review_request(
        changed_store, BRANCH, "main", "Other title", "Other body"
    )

    assert second.ok
    assert second.value.reused is True
    assert second.value.url == first.value.url
    assert changed_store.open_pull_request_count() == count_before == 1


@pytest.mark.asyncio
async def test_open_without_changes_fails(store):
    await store.create_ref(BRANCH, "abc123")

    result = await open_or_reuse_review_request(store, BRANCH, "main", "T", "B")

    assert isinstance(result, Err)
    assert result.kind == ErrorKind.REVIEW_REQUEST_FAILED
    assert result.status_code == 422
    assert "No commits between" in result.body


@pytest.mark.asyncio
async def test_open_lists_by_head_branch():
    fake_store = MagicMock()
    fake_store.list_pull_requests = AsyncMock(return_value=[])
    fake_store.create_pull_request = AsyncMock(
        return_value=MagicMock(url="https://github.com/o/r/pull/7", number=7)
    )

    result = await open_or_reuse_review_request(fake_store, BRANCH, "main", "T", "B")

    assert result.value.number == 7
    fake_store.list_pull_requests.assert_awaited_once_with(
        head_branch=BRANCH, base="main", state="open"
    )
    fake_store.create_pull_request.assert_awaited_once_with(
        head_branch=BRANCH, base="main", title="T", body="B"
    )


@pytest.mark.asyncio
async def test_merge_merges_open_pull_request(changed_store):
    await open_or_reuse_review_request(changed_store, BRANCH, "main", "T", "B")

    result = await merge_review_request(changed_store, BRANCH, "main")

    assert isinstance(result, Ok)
    assert result.value.merged is True
    assert result.value.number == 1
    assert result.value.commit_sha == changed_store.branches["main"]
    assert changed_store.read_file("main", META_PATH) == {"orgId": "acme"}


@pytest.mark.asyncio
async def test_merge_twice_reports_already_merged(changed_store):
    await open_or_reuse_review_request(changed_store, BRANCH, "main", "T", "B")
    first = await merge_review_request(changed_store, BRANCH, "main")

    second = await merge_review_request(changed_store, BRANCH, "main")

    assert second.ok
    assert second.value.merged is False
    assert second.value.commit_sha == first.value.commit_sha


@pytest.mark.asyncio
async def test_merge_405_after_concurrent_merge_is_success():
    def pull(state: str, merged: bool) -> PullRequestInfo:
        return PullRequestInfo(
            number=3,
            url="https://github.com/o/r/pull/3",
            head=BRANCH,
            base="main",
            state=state,
            merged=merged,
            merge_commit_sha="m3" if merged else None,
        )

    fake_store = MagicMock()
    fake_store.list_pull_requests = AsyncMock(
        side_effect=[[pull("open", False)], [pull("closed", True)]]
    )
    fake_store.merge_pull_request = AsyncMock(
        side_effect=GitHubAPIError("Pull Request is not mergeable", 405, "{}")
    )

    result = await merge_review_request(fake_store, BRANCH, "main")

    assert isinstance(result, Ok)
    assert result.value.merged is False
    assert result.value.number == 3
    assert result.value.commit_sha == "m3"
    assert fake_store.list_pull_requests.await_count == 2
    fake_store.list_pull_requests.assert_awaited_with(
        head_branch=BRANCH, base="main", state="all"
    )


@pytest.mark.asyncio
async def test_merge_405_on_unmergeable_pull_request_fails(changed_store):
    await open_or_reuse_review_request(changed_store, BRANCH, "main", "T", "B")
    changed_store.inject_failure("merge_pull_request", 405, "Pull Request is not mergeable")

    result = await merge_review_request(changed_store, BRANCH, "main")

    assert isinstance(result, Err)
    assert result.kind == ErrorKind.MERGE_FAILED
    assert result.status_code == 405
    assert "not mergeable" in result.body
    assert changed_store.read_file("main", META_PATH) is None
    assert changed_store.open_pull_request_count() == 1


@pytest.mark.asyncio
async def test_merge_without_pull_request_fails(changed_store):
    result = await merge_review_request(changed_store, BRANCH, "main")

    assert isinstance(result, Err)
    assert result.kind == ErrorKind.MERGE_FAILED
    assert result.status_code == 404


@pytest.mark.asyncio
async def test_merge_remote_error_fails(changed_store):
    await open_or_reuse_review_request(changed_store, BRANCH, "main", "T", "B")
    changed_store.inject_failure("merge_pull_request", 409, "Head branch was modified")

    result = await merge_review_request(changed_store, BRANCH, "main")

    assert isinstance(result, Err)
    assert result.kind == ErrorKind.MERGE_FAILED
    assert result.status_code == 409
