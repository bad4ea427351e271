"""Tests for the GitHub REST content store."""

import base64
import json

import httpx
import pytest
from pydantic import SecretStr

from src.privacy_gateway.config import DataRepoSettings
from src.privacy_gateway.services.github_content_store import (
    GitHubAPIError,
    GitHubConfigurationError,
    GitHubContentStore,
    extract_error_message,
)

REPO = "/repos/open-gov-group/data"


def make_store(handler) -> GitHubContentStore:
    client = httpx.AsyncClient(
        base_url="https://api.github.com", transport=httpx.MockTransport(handler)
    )
    return GitHubContentStore(
        owner="open-gov-group",
        repo="data",
        base_branch="main",
        token="test-token",
        client=client,
    )


def test_from_settings_requires_token():
    settings = DataRepoSettings(DATA_OWNER="o", DATA_REPO="r")

    with pytest.raises(GitHubConfigurationError):
        GitHubContentStore.from_settings(settings)


def test_from_settings_builds_store():
    settings = DataRepoSettings(
        GH_TOKEN_DATA=SecretStr("secret"),
        DATA_OWNER="open-gov-group",
        DATA_REPO="data",
        DATA_BASE="develop",
    )
    client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200)))

    store = GitHubContentStore.from_settings(settings, client=client)

    assert store.base_branch == "develop"
    assert client.headers["Authorization"] == "Bearer secret"
    assert client.headers["X-GitHub-Api-Version"] == "2022-11-28"


@pytest.mark.asyncio
async def test_get_ref_sha():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == f"{REPO}/git/ref/heads/main"
        assert request.headers["Authorization"] == "Bearer test-token"
        return httpx.Response(200, json={"object": {"sha": "abc123"}})

    store = make_store(handler)

    assert await store.get_ref_sha("main") == "abc123"


@pytest.mark.asyncio
async def test_create_ref_existing_raises_with_status_and_body():
    body = {"message": "Reference already exists"}

    def handler(request: httpx.Request) -> httpx.Response:
        assert json.loads(request.content) == {
            "ref": "refs/heads/init/acme",
            "sha": "abc123",
        }
        return httpx.Response(422, json=body)

    store = make_store(handler)

    with pytest.raises(GitHubAPIError) as exc_info:
        await store.create_ref("init/acme", "abc123")

    assert exc_info.value.status_code == 422
    assert "Reference already exists" in exc_info.value.body
    assert "Reference already exists" in str(exc_info.value)


@pytest.mark.asyncio
async def test_get_file_decodes_content_and_missing_is_none():
    encoded = base64.b64encode(b'{"a": 1}').decode()

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["ref"] == "drafts/x"
        if request.url.path.endswith("meta.json"):
            return httpx.Response(
                200, json={"type": "file", "sha": "s1", "content": encoded}
            )
        return httpx.Response(404, json={"message": "Not Found"})

    store = make_store(handler)

    stored = await store.get_file("data/tenants/acme/meta.json", "drafts/x")
    assert stored.sha == "s1"
    assert json.loads(stored.content) == {"a": 1}
    assert await store.get_file("data/tenants/acme/ropa/ropa.json", "drafts/x") is None


@pytest.mark.asyncio
async def test_put_file_sends_sha_only_when_known():
    payloads = []

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "PUT"
        assert request.url.path == f"{REPO}/contents/data/meta.json"
        payloads.append(json.loads(request.content))
        return httpx.Response(200, json={"content": {"sha": "n"}, "commit": {"sha": "c"}})

    store = make_store(handler)

    await store.put_file("data/meta.json", branch="b", content_b64="e30=", message="m")
    await store.put_file(
        "data/meta.json", branch="b", content_b64="e30=", message="m", sha="old"
    )

    assert "sha" not in payloads[0]
    assert payloads[1]["sha"] == "old"
    assert payloads[1]["branch"] == "b"


@pytest.mark.asyncio
async def test_put_file_conflict():
    store = make_store(
        lambda request: httpx.Response(409, json={"message": "x does not match y"})
    )

    with pytest.raises(GitHubAPIError) as exc_info:
        await store.put_file("p.json", branch="b", content_b64="e30=", message="m", sha="y")

    assert exc_info.value.status_code == 409


@pytest.mark.asyncio
async def test_list_pull_requests_filters_by_owner_head():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["head"] == "open-gov-group:drafts/x"
        assert request.url.params["state"] == "open"
        assert request.url.params["base"] == "main"
        return httpx.Response(
            200,
            json=[
                {
                    "number": 4,
                    "html_url": "https://github.com/open-gov-group/data/pull/4",
                    "head": {"ref": "drafts/x"},
                    "base": {"ref": "main"},
                    "state": "open",
                    "merged_at": None,
                }
            ],
        )

    store = make_store(handler)

    pulls = await store.list_pull_requests(head_branch="drafts/x", base="main")

    assert len(pulls) == 1
    assert pulls[0].number == 4
    assert pulls[0].url.endswith("/pull/4")
    assert pulls[0].merged is False


@pytest.mark.asyncio
async def test_merge_pull_request_returns_sha():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == f"{REPO}/pulls/4/merge"
        assert json.loads(request.content)["merge_method"] == "merge"
        return httpx.Response(200, json={"sha": "m1", "merged": True})

    store = make_store(handler)

    assert await store.merge_pull_request(4) == "m1"


@pytest.mark.asyncio
async def test_fetch_raw_json_uses_raw_host():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.host == "raw.githubusercontent.com"
        assert request.url.path == (
            "/open-gov-group/data/refs/heads/main/data/tenants/acme/meta.json"
        )
        return httpx.Response(200, json={"orgId": "acme"})

    store = make_store(handler)

    assert await store.fetch_raw_json("data/tenants/acme/meta.json", "main") == {
        "orgId": "acme"
    }


@pytest.mark.asyncio
async def test_network_errors_are_wrapped():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("boom", request=request)

    store = make_store(handler)

    with pytest.raises(GitHubAPIError) as exc_info:
        await store.get_ref_sha("main")

    assert exc_info.value.status_code is None


def test_extract_error_message_joins_errors():
    body = json.dumps(
        {
            "message": "Validation Failed",
            "errors": [{"message": "A pull request already exists"}],
        }
    )

    assert (
        extract_error_message(body)
        == "Validation Failed: A pull request already exists"
    )


def test_extract_error_message_plain_text_and_empty():
    assert extract_error_message("  upstream timeout \n") == "upstream timeout"
    assert extract_error_message("") is None
    assert extract_error_message(None) is None


@pytest.mark.asyncio
async def test_api_error_keeps_raw_body_and_decodes_remote_message():
    body = {
        "message": "Validation Failed",
        "errors": [{"message": "A pull request already exists"}],
    }
    store = make_store(lambda request: httpx.Response(422, json=body))

    with pytest.raises(GitHubAPIError) as exc_info:
        await store.create_pull_request(
            head_branch="drafts/x", base="main", title="T", body="B"
        )

    error = exc_info.value
    assert json.loads(error.body) == body
    assert error.remote_message == "Validation Failed: A pull request already exists"
    assert str(error).endswith("(GitHub: Validation Failed: A pull request already exists)")
