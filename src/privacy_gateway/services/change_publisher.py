"""Write JSON documents onto a branch with compare-and-swap semantics."""

from __future__ import annotations

import base64
import json
import logging
from dataclasses import dataclass
from typing import Any, Sequence

from src.privacy_gateway.protocols import ContentStoreProtocol
from src.privacy_gateway.results import Err, ErrorKind, Ok, Result, WriteHandle
from src.privacy_gateway.services.github_content_store import GitHubAPIError

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class DocumentFile:
    """One file of a multi-file change."""

    path: str
    document: Any
    message: str
    expected_sha: str | None = None


def serialize_document(document: Any) -> str:
    """Pretty-print ``document`` as UTF-8 JSON, keeping the caller's key order."""
    if isinstance(document, str):
        return document
    return json.dumps(document, indent=2, ensure_ascii=False) + "\n"


def encode_document(document: Any) -> str:
    return base64.b64encode(serialize_document(document).encode("utf-8")).decode(
        "ascii"
    )


async def put_document(
    store: ContentStoreProtocol,
    branch: str,
    path: str,
    document: Any,
    message: str,
    *,
    expected_sha: str | None = None,
) -> Result[WriteHandle]:
    """Create or update ``path`` on ``branch``.

    The current blob sha on that branch is looked up first (unless the caller
    pins ``expected_sha``) and sent with the write, so a file changed by a
    concurrent writer makes this write fail instead of being overwritten.
    """

    try:
        encoded = encode_document(document)
    except (TypeError, ValueError) as exc:
        return Err(
            ErrorKind.VALIDATION_FAILED,
            f"Document for '{path}' is not JSON serializable: {exc}",
            path=path,
        )

    try:
        sha = expected_sha
        if sha is None:
            existing = await store.get_file(path, branch)
            sha = existing.sha if existing else None

        response = await store.put_file(
            path, branch=branch, content_b64=encoded, message=message, sha=sha
        )
    except GitHubAPIError as exc:
        logger.warning(
            "Write of %s on %s rejected with status %s", path, branch, exc.status_code
        )
        return Err(
            ErrorKind.WRITE_FAILED,
            path,
            status_code=exc.status_code,
            body=exc.body or str(exc),
            path=path,
        )

    content = response.get("content") or {}
    commit = response.get("commit") or {}
    return Ok(
        WriteHandle(
            path=path,
            branch=branch,
            content_sha=content.get("sha"),
            commit_sha=commit.get("sha"),
        )
    )


async def put_documents(
    store: ContentStoreProtocol,
    branch: str,
    files: Sequence[DocumentFile],
) -> tuple[list[WriteHandle], Err | None]:
    """Write ``files`` one after another, stopping at the first failure.

    Returns the handles of the files that were committed and the error of the
    file that failed, if any. Files written before a failure stay on the
    branch.
    """

    written: list[WriteHandle] = []
    for file in files:
        result = await put_document(
            store,
            branch,
            file.path,
            file.document,
            file.message,
            expected_sha=file.expected_sha,
        )
        if isinstance(result, Err):
            return written, result
        written.append(result.value)
    return written, None
