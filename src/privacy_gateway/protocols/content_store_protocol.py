"""Protocol definition for the remote content store."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol


@dataclass(slots=True, frozen=True)
class StoredFile:
    """A file blob as returned by the contents API."""

    path: str
    sha: str
    content: str


@dataclass(slots=True, frozen=True)
class PullRequestInfo:
    number: int
    url: str
    head: str
    base: str
    state: str
    merged: bool = False
    merge_commit_sha: str | None = None


class ContentStoreProtocol(Protocol):
    """Operations the change-proposal pipeline needs from the repository host.

    Implementations raise ``GitHubAPIError`` carrying the remote status code
    and response body on any rejected request.
    """

    owner: str
    repo: str
    base_branch: str

    def raw_url(self, path: str, ref: str) -> str:
        """Public download URL of ``path`` on branch ``ref``."""
        ...

    async def get_ref_sha(self, branch: str) -> str:
        """Return the commit sha ``refs/heads/<branch>`` points at."""
        ...

    async def create_ref(self, branch: str, sha: str) -> None:
        """Create ``refs/heads/<branch>`` pointing at ``sha``."""
        ...

    async def get_file(self, path: str, ref: str) -> StoredFile | None:
        """Return the file at ``path`` on ``ref``, or None when it does not exist."""
        ...

    async def put_file(
        self,
        path: str,
        *,
        branch: str,
        content_b64: str,
        message: str,
        sha: str | None = None,
    ) -> dict[str, Any]:
        """Create or update a file; ``sha`` makes the write compare-and-swap."""
        ...

    async def list_directory(self, path: str, ref: str) -> list[dict[str, Any]]:
        """List directory entries (``name``, ``type``, ``path``); empty when missing."""
        ...

    async def fetch_raw_json(self, path: str, ref: str) -> Any | None:
        """Fetch and decode a JSON file by branch and path; None when missing."""
        ...

    async def list_pull_requests(
        self, *, head_branch: str, base: str | None = None, state: str = "open"
    ) -> list[PullRequestInfo]:
        """List pull requests whose head is ``owner:head_branch``."""
        ...

    async def create_pull_request(
        self, *, head_branch: str, base: str, title: str, body: str
    ) -> PullRequestInfo:
        ...

    async def merge_pull_request(self, number: int, *, commit_title: str | None = None) -> str | None:
        """Merge the pull request and return the merge commit sha."""
        ...
