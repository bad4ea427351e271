"""GitHub REST client for the tenant data repository."""

from __future__ import annotations

import base64
import json
import logging
from dataclasses import dataclass, field
from http import HTTPStatus
from typing import Any
from urllib.parse import quote

import httpx

from src.privacy_gateway.config import DataRepoSettings
from src.privacy_gateway.protocols import (
    ContentStoreProtocol,
    PullRequestInfo,
    StoredFile,
)

logger = logging.getLogger(__name__)


class GitHubConfigurationError(RuntimeError):
    """Raised when required GitHub configuration values are missing."""


class GitHubAPIError(RuntimeError):
    """Raised when the GitHub API rejects a request or cannot be reached."""

    def __init__(
        self, message: str, status_code: int | None = None, body: str | None = None
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body

    @property
    def remote_message(self) -> str | None:
        """GitHub's own error text decoded from ``body``."""
        return extract_error_message(self.body)


@dataclass(slots=True)
class GitHubContentStore(ContentStoreProtocol):
    """Async access to refs, contents and pull requests of one repository."""

    owner: str
    repo: str
    base_branch: str
    token: str
    api_url: str = "https://api.github.com"
    raw_base_url: str = "https://raw.githubusercontent.com"
    api_version: str = "2022-11-28"
    timeout: float = 20.0
    client: httpx.AsyncClient | None = None
    _owns_client: bool = field(default=False, init=False)

    def __post_init__(self) -> None:
        self.api_url = self.api_url.rstrip("/")
        self.raw_base_url = self.raw_base_url.rstrip("/")
        if self.client is None:
            self.client = httpx.AsyncClient(
                base_url=self.api_url,
                headers=self._build_headers(),
                timeout=self.timeout,
            )
            self._owns_client = True
        else:
            self.client.headers.update(self._build_headers())

    @classmethod
    def from_settings(
        cls,
        settings: DataRepoSettings,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> GitHubContentStore:
        """Create a store from data repository settings."""

        token_secret = settings.github_token
        if token_secret is None or not token_secret.get_secret_value():
            raise GitHubConfigurationError(
                "GitHub token is not configured. Set GH_TOKEN_DATA."
            )
        if not settings.data_owner:
            raise GitHubConfigurationError(
                "Data repository owner is not configured. Set DATA_OWNER."
            )
        if not settings.data_repo:
            raise GitHubConfigurationError(
                "Data repository name is not configured. Set DATA_REPO."
            )

        return cls(
            owner=settings.data_owner,
            repo=settings.data_repo,
            base_branch=settings.data_base or "main",
            token=token_secret.get_secret_value(),
            api_url=str(settings.github_api_url),
            raw_base_url=str(settings.github_raw_url),
            api_version=settings.github_api_version,
            timeout=settings.github_timeout_seconds,
            client=client,
        )

    async def aclose(self) -> None:
        if self._owns_client and self.client is not None:
            await self.client.aclose()

    # ------------------------------------------------------------------
    # Refs
    # ------------------------------------------------------------------

    async def get_ref_sha(self, branch: str) -> str:
        response = await self._request(
            "GET", f"{self._repo_path}/git/ref/heads/{quote(branch, safe='/')}"
        )
        self._raise_for_status(response, f"Failed to fetch branch '{branch}'.")

        data = response.json()
        try:
            return data["object"]["sha"]
        except (KeyError, TypeError) as exc:
            raise GitHubAPIError(
                "GitHub response missing branch reference.",
                response.status_code,
                response.text,
            ) from exc

    async def create_ref(self, branch: str, sha: str) -> None:
        response = await self._request(
            "POST",
            f"{self._repo_path}/git/refs",
            json={"ref": f"refs/heads/{branch}", "sha": sha},
        )
        self._raise_for_status(response, f"Failed to create branch '{branch}'.")

    # ------------------------------------------------------------------
    # Contents
    # ------------------------------------------------------------------

    async def get_file(self, path: str, ref: str) -> StoredFile | None:
        response = await self._request(
            "GET", self._contents_path(path), params={"ref": ref}
        )
        if response.status_code == HTTPStatus.NOT_FOUND:
            return None
        self._raise_for_status(response, f"Failed to read '{path}' on '{ref}'.")

        data = response.json()
        if not isinstance(data, dict) or data.get("type") != "file":
            raise GitHubAPIError(
                f"'{path}' is not a file.", HTTPStatus.UNPROCESSABLE_ENTITY
            )
        encoded = data.get("content") or ""
        content = base64.b64decode(encoded).decode("utf-8") if encoded else ""
        return StoredFile(path=path, sha=data["sha"], content=content)

    async def put_file(
        self,
        path: str,
        *,
        branch: str,
        content_b64: str,
        message: str,
        sha: str | None = None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "message": message,
            "content": content_b64,
            "branch": branch,
        }
        if sha:
            payload["sha"] = sha
        response = await self._request("PUT", self._contents_path(path), json=payload)
        self._raise_for_status(response, f"Failed to write '{path}'.")
        return response.json()

    async def list_directory(self, path: str, ref: str) -> list[dict[str, Any]]:
        response = await self._request(
            "GET", self._contents_path(path), params={"ref": ref}
        )
        if response.status_code == HTTPStatus.NOT_FOUND:
            return []
        self._raise_for_status(response, f"Failed to list '{path}' on '{ref}'.")

        items = response.json()
        if not isinstance(items, list):
            return []
        return [
            {"name": item.get("name"), "type": item.get("type"), "path": item.get("path")}
            for item in items
            if isinstance(item, dict)
        ]

    def raw_url(self, path: str, ref: str) -> str:
        return (
            f"{self.raw_base_url}/{self.owner}/{self.repo}/refs/heads/"
            f"{quote(ref, safe='/')}/{quote(path.strip('/'), safe='/')}"
        )

    async def fetch_raw_json(self, path: str, ref: str) -> Any | None:
        response = await self._request(
            "GET",
            self.raw_url(path, ref),
            headers={"Accept": "application/json"},
        )
        if response.status_code == HTTPStatus.NOT_FOUND:
            return None
        self._raise_for_status(response, f"Failed to download '{path}' on '{ref}'.")
        try:
            return response.json()
        except json.JSONDecodeError as exc:
            raise GitHubAPIError(
                f"'{path}' does not contain valid JSON.",
                response.status_code,
                response.text,
            ) from exc

    # ------------------------------------------------------------------
    # Pull requests
    # ------------------------------------------------------------------

    async def list_pull_requests(
        self, *, head_branch: str, base: str | None = None, state: str = "open"
    ) -> list[PullRequestInfo]:
        params: dict[str, Any] = {
            "state": state,
            "head": f"{self.owner}:{head_branch}",
            "per_page": 100,
        }
        if base:
            params["base"] = base
        response = await self._request("GET", f"{self._repo_path}/pulls", params=params)
        self._raise_for_status(
            response, f"Failed to list pull requests for '{head_branch}'."
        )
        return [self._to_pull_request(item) for item in response.json()]

    async def create_pull_request(
        self, *, head_branch: str, base: str, title: str, body: str
    ) -> PullRequestInfo:
        response = await self._request(
            "POST",
            f"{self._repo_path}/pulls",
            json={"title": title, "head": head_branch, "base": base, "body": body},
        )
        self._raise_for_status(
            response, f"Failed to open pull request for '{head_branch}'."
        )
        return self._to_pull_request(response.json())

    async def merge_pull_request(
        self, number: int, *, commit_title: str | None = None
    ) -> str | None:
        payload: dict[str, Any] = {"merge_method": "merge"}
        if commit_title:
            payload["commit_title"] = commit_title
        response = await self._request(
            "PUT", f"{self._repo_path}/pulls/{number}/merge", json=payload
        )
        self._raise_for_status(response, f"Failed to merge pull request #{number}.")
        return response.json().get("sha")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @property
    def _repo_path(self) -> str:
        return f"/repos/{self.owner}/{self.repo}"

    def _contents_path(self, path: str) -> str:
        return f"{self._repo_path}/contents/{quote(path.strip('/'), safe='/')}"

    def _build_headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": self.api_version,
        }

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self.client.request(method, url, **kwargs)
        except httpx.RequestError as exc:
            logger.error("GitHub request %s %s failed: %s", method, url, exc)
            raise GitHubAPIError(f"Failed to communicate with GitHub: {exc}") from exc

    def _to_pull_request(self, data: dict[str, Any]) -> PullRequestInfo:
        return PullRequestInfo(
            number=int(data["number"]),
            url=data.get("html_url") or "",
            head=(data.get("head") or {}).get("ref", ""),
            base=(data.get("base") or {}).get("ref", ""),
            state=data.get("state", "open"),
            merged=bool(data.get("merged_at")),
            merge_commit_sha=data.get("merge_commit_sha"),
        )

    def _raise_for_status(self, response: httpx.Response, message: str) -> None:
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            body = response.text
            detail = extract_error_message(body)
            detail_text = (
                f"{message}" if not detail else f"{message} (GitHub: {detail})"
            )
            logger.error("GitHub API error %s: %s", response.status_code, detail_text)
            raise GitHubAPIError(detail_text, response.status_code, body) from exc


def extract_error_message(body_text: str | None) -> str | None:
    """Collapse GitHub's ``message`` and ``errors`` fields into one string.

    ``body_text`` is the raw response body as kept in ``GitHubAPIError.body``;
    it is decoded once and non-JSON text is returned stripped.
    """
    if not body_text:
        return None
    try:
        body = json.loads(body_text)
    except json.JSONDecodeError:
        return body_text.strip() or None

    if isinstance(body, dict):
        message = body.get("message")
        errors = body.get("errors")
        extra = None
        if isinstance(errors, list):
            extra_messages: list[str] = []
            for error in errors:
                if isinstance(error, dict) and "message" in error:
                    extra_messages.append(str(error["message"]))
                elif isinstance(error, str):
                    extra_messages.append(error)
            if extra_messages:
                extra = "; ".join(extra_messages)
        if message and extra:
            return f"{message}: {extra}"
        if extra:
            return extra
        return message
    return None
