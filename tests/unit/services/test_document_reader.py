"""Tests for reading tenant documents."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from src.privacy_gateway.results import Err, ErrorKind
from src.privacy_gateway.services.change_publisher import put_document
from src.privacy_gateway.services.document_reader import DocumentReader
from src.privacy_gateway.services.github_content_store import GitHubAPIError


@pytest.fixture
async def seeded_store(store):
    for path, document in (
        ("data/tenants/acme/meta.json", {"orgId": "acme"}),
        ("data/tenants/acme/procedures/proc-1/ssp.json", {"system-security-plan": {}}),
        ("data/tenants/acme/procedures/proc-2/ssp.json", {"system-security-plan": {}}),
        ("data/tenants/acme/profiles/default.json", {"href": "p.json"}),
        ("data/tenants/acme/profiles/notes.txt", "plain"),
        ("data/tenants/acme/ropa/ropa.json", {"activities": []}),
        ("data/tenants/acme/ropa/payroll.json", {"id": "payroll"}),
        ("data/tenants/acme/ropa/hiring.json", {"id": "hiring"}),
    ):
        await put_document(store, "main", path, document, "seed")
    return store


@pytest.fixture
def reader(seeded_store):
    return DocumentReader(seeded_store, data_root="data")


@pytest.mark.asyncio
async def test_reads_documents_from_base_branch(reader):
    meta = await reader.tenant_meta("acme")
    profile = await reader.profile("acme", "default")

    assert meta.value == {"orgId": "acme"}
    assert profile.value == {"href": "p.json"}


@pytest.mark.asyncio
async def test_missing_document_is_not_found(reader):
    result = await reader.ropa("other")

    assert isinstance(result, Err)
    assert result.kind == ErrorKind.NOT_FOUND
    assert result.detail == "data/tenants/other/ropa/ropa.json"


@pytest.mark.asyncio
async def test_invalid_ids_are_rejected(reader):
    assert (await reader.ssp("..", "proc-1")).kind == ErrorKind.VALIDATION_FAILED
    assert (await reader.ssp("acme", "/")).kind == ErrorKind.VALIDATION_FAILED


@pytest.mark.asyncio
async def test_lists_procedures_and_profiles(reader):
    procedures = await reader.list_procedures("acme")
    profiles = await reader.list_profiles("acme")
    nothing = await reader.list_procedures("unknown")

    assert procedures.value == ["proc-1", "proc-2"]
    assert profiles.value == ["default"]
    assert nothing.value == []


@pytest.mark.asyncio
async def test_remote_errors_are_server_errors():
    store = MagicMock()
    store.base_branch = "main"
    store.fetch_raw_json = AsyncMock(side_effect=GitHubAPIError("bad", 500, "oops"))

    result = await DocumentReader(store).tenant_meta("acme")

    assert result.kind == ErrorKind.SERVER_ERROR
    assert result.status_code == 500


@pytest.mark.asyncio
async def test_lists_ropa_processes_without_the_register(reader):
    processes = await reader.list_ropa_processes("acme")
    nothing = await reader.list_ropa_processes("unknown")

    assert processes.value == ["hiring", "payroll"]
    assert nothing.value == []


@pytest.mark.asyncio
async def test_reads_single_ropa_process(reader):
    payroll = await reader.ropa_process("acme", "payroll")
    missing = await reader.ropa_process("acme", "travel")
    register = await reader.ropa_process("acme", "ropa")

    assert payroll.value == {"id": "payroll"}
    assert missing.kind == ErrorKind.NOT_FOUND
    assert missing.detail == "data/tenants/acme/ropa/travel.json"
    assert register.kind == ErrorKind.VALIDATION_FAILED


@pytest.mark.asyncio
async def test_listing_remote_error_is_server_error():
    store = MagicMock()
    store.base_branch = "main"
    store.list_directory = AsyncMock(side_effect=GitHubAPIError("bad", 502, "oops"))

    result = await DocumentReader(store).list_ropa_processes("acme")

    assert result.kind == ErrorKind.SERVER_ERROR
    assert result.status_code == 502
    store.list_directory.assert_awaited_once_with("data/tenants/acme/ropa", "main")
