"""Read-only access to tenant documents on a branch."""

from __future__ import annotations

import logging
from typing import Any

from src.privacy_gateway.protocols import ContentStoreProtocol
from src.privacy_gateway.results import Err, ErrorKind, Ok, Result
from src.privacy_gateway.services.github_content_store import GitHubAPIError
from src.privacy_gateway.services.tenant_paths import (
    DEFAULT_PROCEDURE_ID,
    ROPA_REGISTER_ID,
    TenantPaths,
    sanitize_id,
)

logger = logging.getLogger(__name__)

_JSON_SUFFIX = ".json"


class DocumentReader:
    """Fetches tenant documents from the data repository.

    Reads default to the base branch; every call hits the store, nothing is
    cached here.
    """

    def __init__(
        self,
        store: ContentStoreProtocol,
        *,
        data_root: str = "data",
        default_ref: str | None = None,
    ) -> None:
        self._store = store
        self._data_root = data_root
        self._default_ref = default_ref or store.base_branch

    async def tenant_meta(self, org_id: str, ref: str | None = None) -> Result[Any]:
        paths = self._paths(org_id)
        if paths is None:
            return _invalid_id("org id", org_id)
        return await self.read(paths.meta, ref)

    async def ssp(
        self, org_id: str, proc_id: str = DEFAULT_PROCEDURE_ID, ref: str | None = None
    ) -> Result[Any]:
        paths = self._paths(org_id)
        proc = sanitize_id(proc_id)
        if paths is None:
            return _invalid_id("org id", org_id)
        if not proc:
            return _invalid_id("procedure id", proc_id)
        return await self.read(paths.ssp(proc), ref)

    async def ropa(self, org_id: str, ref: str | None = None) -> Result[Any]:
        paths = self._paths(org_id)
        if paths is None:
            return _invalid_id("org id", org_id)
        return await self.read(paths.ropa, ref)

    async def profile(
        self, org_id: str, profile_id: str, ref: str | None = None
    ) -> Result[Any]:
        paths = self._paths(org_id)
        profile = sanitize_id(profile_id)
        if paths is None:
            return _invalid_id("org id", org_id)
        if not profile:
            return _invalid_id("profile id", profile_id)
        return await self.read(paths.profile(profile), ref)

    async def list_procedures(
        self, org_id: str, ref: str | None = None
    ) -> Result[list[str]]:
        """Return the ids of every procedure directory of ``org_id``."""
        paths = self._paths(org_id)
        if paths is None:
            return _invalid_id("org id", org_id)
        try:
            entries = await self._store.list_directory(
                paths.procedures_dir, ref or self._default_ref
            )
        except GitHubAPIError as exc:
            return _remote_error(exc)
        return Ok(sorted(e["name"] for e in entries if e.get("type") == "dir"))

    async def list_profiles(
        self, org_id: str, ref: str | None = None
    ) -> Result[list[str]]:
        """Return the ids of every ``*.json`` profile of ``org_id``."""
        paths = self._paths(org_id)
        if paths is None:
            return _invalid_id("org id", org_id)
        return await self._list_json_ids(paths.profiles_dir, ref)

    async def ropa_process(
        self, org_id: str, process_id: str, ref: str | None = None
    ) -> Result[Any]:
        paths = self._paths(org_id)
        process = sanitize_id(process_id)
        if paths is None:
            return _invalid_id("org id", org_id)
        if not process or process == ROPA_REGISTER_ID:
            return _invalid_id("process id", process_id)
        return await self.read(paths.ropa_process(process), ref)

    async def list_ropa_processes(
        self, org_id: str, ref: str | None = None
    ) -> Result[list[str]]:
        """Return the ids of the per-process RoPA records, without the register."""
        paths = self._paths(org_id)
        if paths is None:
            return _invalid_id("org id", org_id)
        result = await self._list_json_ids(paths.ropa_dir, ref)
        if isinstance(result, Err):
            return result
        return Ok([item for item in result.value if item != ROPA_REGISTER_ID])

    async def read(self, path: str, ref: str | None = None) -> Result[Any]:
        """Fetch and decode the JSON document at ``path``."""
        branch = ref or self._default_ref
        try:
            document = await self._store.fetch_raw_json(path, branch)
        except GitHubAPIError as exc:
            return _remote_error(exc)
        if document is None:
            logger.debug("No document at %s on %s", path, branch)
            return Err(ErrorKind.NOT_FOUND, path, status_code=404, path=path)
        return Ok(document)

    async def _list_json_ids(self, directory: str, ref: str | None) -> Result[list[str]]:
        try:
            entries = await self._store.list_directory(
                directory, ref or self._default_ref
            )
        except GitHubAPIError as exc:
            return _remote_error(exc)
        return Ok(
            sorted(
                e["name"][: -len(_JSON_SUFFIX)]
                for e in entries
                if e.get("type") == "file" and e.get("name", "").endswith(_JSON_SUFFIX)
            )
        )

    def _paths(self, org_id: str) -> TenantPaths | None:
        org = sanitize_id(org_id)
        return TenantPaths(self._data_root, org) if org else None


def _invalid_id(name: str, value: str) -> Err:
    return Err(ErrorKind.VALIDATION_FAILED, f"Invalid {name}: '{value}'.")


def _remote_error(exc: GitHubAPIError) -> Err:
    return Err(
        ErrorKind.SERVER_ERROR,
        str(exc),
        status_code=exc.status_code,
        body=exc.body,
    )
