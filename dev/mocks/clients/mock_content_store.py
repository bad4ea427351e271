"""In-memory content store for offline development and testing."""

from __future__ import annotations

import base64
import hashlib
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any

from src.privacy_gateway.protocols import (
    ContentStoreProtocol,
    PullRequestInfo,
    StoredFile,
)
from src.privacy_gateway.services.github_content_store import GitHubAPIError

logger = logging.getLogger(__name__)

_INVALID_REF = re.compile(r"[\s:?*\[\]^~\\]|\.\.|@\{|//|^/|/$|\.lock$")


def _blob_sha(content: str) -> str:
    data = content.encode("utf-8")
    return hashlib.sha1(b"blob %d\0" % len(data) + data).hexdigest()


def _error(status: int, message: str) -> GitHubAPIError:
    return GitHubAPIError(message, status, json.dumps({"message": message}))


@dataclass
class _PullRequest:
    number: int
    head: str
    base: str
    title: str
    body: str
    state: str = "open"
    merged: bool = False
    merge_commit_sha: str | None = None


@dataclass
class MockContentStore(ContentStoreProtocol):
    """
    Mock implementation of the GitHub content store.

    Branches point at commits and every commit owns a full snapshot of the
    tree, so writes on one branch never leak into another. Rejections mirror
    GitHub's status codes: 404 for missing refs, 422 for existing or invalid
    refs, 409 for stale file shas and 405 for unmergeable pull requests.
    """

    owner: str = "open-gov-group"
    repo: str = "opengov-privacy-data"
    base_branch: str = "main"
    initial_sha: str = "0" * 40
    commits: dict[str, dict[str, str]] = field(default_factory=dict)
    branches: dict[str, str] = field(default_factory=dict)
    pulls: list[_PullRequest] = field(default_factory=list)
    failures: dict[tuple[str, str | None], tuple[int, str]] = field(
        default_factory=dict
    )
    _commit_counter: int = 0

    def __post_init__(self) -> None:
        self.commits.setdefault(self.initial_sha, {})
        self.branches.setdefault(self.base_branch, self.initial_sha)

    # ------------------------------------------------------------------
    # Test helpers
    # ------------------------------------------------------------------

    def inject_failure(
        self, operation: str, status: int, message: str, *, path: str | None = None
    ) -> None:
        """Make the next ``operation`` (optionally on ``path``) fail with ``status``."""
        self.failures[(operation, path)] = (status, message)

    def read_file(self, branch: str, path: str) -> Any | None:
        """Return the decoded JSON stored at ``path`` on ``branch``."""
        tree = self.commits[self.branches[branch]]
        if path not in tree:
            return None
        return json.loads(tree[path])

    def open_pull_request_count(self) -> int:
        return sum(1 for pr in self.pulls if pr.state == "open")

    # ------------------------------------------------------------------
    # ContentStoreProtocol
    # ------------------------------------------------------------------

    def raw_url(self, path: str, ref: str) -> str:
        return (
            f"https://raw.githubusercontent.com/{self.owner}/{self.repo}"
            f"/refs/heads/{ref}/{path}"
        )

    async def get_ref_sha(self, branch: str) -> str:
        self._maybe_fail("get_ref_sha", None)
        if branch not in self.branches:
            raise _error(404, "Not Found")
        return self.branches[branch]

    async def create_ref(self, branch: str, sha: str) -> None:
        self._maybe_fail("create_ref", None)
        if not branch or _INVALID_REF.search(branch):
            raise _error(422, f"{branch} is not a valid ref name.")
        if branch in self.branches:
            raise _error(422, "Reference already exists")
        if sha not in self.commits:
            raise _error(422, "Object does not exist")
        self.branches[branch] = sha
        logger.debug("[MockContentStore] created branch %s at %s", branch, sha)

    async def get_file(self, path: str, ref: str) -> StoredFile | None:
        self._maybe_fail("get_file", path)
        if ref not in self.branches:
            raise _error(404, f"No commit found for the ref {ref}")
        tree = self.commits[self.branches[ref]]
        if path not in tree:
            return None
        return StoredFile(path=path, sha=_blob_sha(tree[path]), content=tree[path])

    async def put_file(
        self,
        path: str,
        *,
        branch: str,
        content_b64: str,
        message: str,
        sha: str | None = None,
    ) -> dict[str, Any]:
        self._maybe_fail("put_file", path)
        if branch not in self.branches:
            raise _error(404, f"Branch {branch} not found")

        tree = dict(self.commits[self.branches[branch]])
        existing = tree.get(path)
        if existing is not None and sha is None:
            raise _error(422, 'Invalid request.\n\n"sha" wasn\'t supplied.')
        if existing is not None and sha != _blob_sha(existing):
            raise _error(409, f"{path} does not match {sha}")
        if existing is None and sha is not None:
            raise _error(409, f"{path} does not match {sha}")

        content = base64.b64decode(content_b64).decode("utf-8")
        tree[path] = content
        commit_sha = self._commit(tree)
        self.branches[branch] = commit_sha
        return {
            "content": {"path": path, "sha": _blob_sha(content)},
            "commit": {"sha": commit_sha, "message": message},
        }

    async def list_directory(self, path: str, ref: str) -> list[dict[str, Any]]:
        if ref not in self.branches:
            return []
        prefix = path.strip("/") + "/"
        entries: dict[str, str] = {}
        for file_path in self.commits[self.branches[ref]]:
            if not file_path.startswith(prefix):
                continue
            rest = file_path[len(prefix):]
            name, _, remainder = rest.partition("/")
            entries[name] = "dir" if remainder else "file"
        return [
            {"name": name, "type": kind, "path": prefix + name}
            for name, kind in sorted(entries.items())
        ]

    async def fetch_raw_json(self, path: str, ref: str) -> Any | None:
        if ref not in self.branches:
            return None
        return self.read_file(ref, path)

    async def list_pull_requests(
        self, *, head_branch: str, base: str | None = None, state: str = "open"
    ) -> list[PullRequestInfo]:
        self._maybe_fail("list_pull_requests", None)
        return [
            self._info(pr)
            for pr in self.pulls
            if pr.head == head_branch
            and (base is None or pr.base == base)
            and (state == "all" or pr.state == state)
        ]

    async def create_pull_request(
        self, *, head_branch: str, base: str, title: str, body: str
    ) -> PullRequestInfo:
        self._maybe_fail("create_pull_request", None)
        if head_branch not in self.branches or base not in self.branches:
            raise _error(422, "Validation Failed: head or base does not exist")
        if self.branches[head_branch] == self.branches[base]:
            raise _error(
                422, f"Validation Failed: No commits between {base} and {head_branch}"
            )
        for pr in self.pulls:
            if pr.state == "open" and pr.head == head_branch and pr.base == base:
                raise _error(
                    422,
                    f"Validation Failed: A pull request already exists for {self.owner}:{head_branch}.",
                )
        pr = _PullRequest(
            number=len(self.pulls) + 1,
            head=head_branch,
            base=base,
            title=title,
            body=body,
        )
        self.pulls.append(pr)
        return self._info(pr)

    async def merge_pull_request(
        self, number: int, *, commit_title: str | None = None
    ) -> str | None:
        self._maybe_fail("merge_pull_request", None)
        pr = next((p for p in self.pulls if p.number == number), None)
        if pr is None:
            raise _error(404, "Not Found")
        if pr.state != "open":
            raise _error(405, "Pull Request is not mergeable")

        merged_tree = dict(self.commits[self.branches[pr.base]])
        merged_tree.update(self.commits[self.branches[pr.head]])
        merge_sha = self._commit(merged_tree)
        self.branches[pr.base] = merge_sha
        pr.state = "closed"
        pr.merged = True
        pr.merge_commit_sha = merge_sha
        return merge_sha

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _maybe_fail(self, operation: str, path: str | None) -> None:
        for key in ((operation, path), (operation, None)):
            if key in self.failures:
                status, message = self.failures.pop(key)
                raise _error(status, message)

    def _commit(self, tree: dict[str, str]) -> str:
        self._commit_counter += 1
        commit_sha = hashlib.sha1(
            f"{self._commit_counter}:{sorted(tree.items())}".encode("utf-8")
        ).hexdigest()
        self.commits[commit_sha] = tree
        return commit_sha

    def _info(self, pr: _PullRequest) -> PullRequestInfo:
        return PullRequestInfo(
            number=pr.number,
            url=f"https://github.com/{self.owner}/{self.repo}/pull/{pr.number}",
            head=pr.head,
            base=pr.base,
            state=pr.state,
            merged=pr.merged,
            merge_commit_sha=pr.merge_commit_sha,
        )
