"""Open, reuse and merge pull requests for change branches."""

from __future__ import annotations

import logging
from http import HTTPStatus

from src.privacy_gateway.protocols import ContentStoreProtocol, PullRequestInfo
from src.privacy_gateway.results import (
    Err,
    ErrorKind,
    MergeHandle,
    Ok,
    Result,
    ReviewHandle,
)
from src.privacy_gateway.services.github_content_store import GitHubAPIError

logger = logging.getLogger(__name__)


async def open_or_reuse_review_request(
    store: ContentStoreProtocol,
    branch: str,
    base: str,
    title: str,
    body: str,
) -> Result[ReviewHandle]:
    """Return the open pull request for ``branch``, creating one if none exists."""

    try:
        existing = await store.list_pull_requests(
            head_branch=branch, base=base, state="open"
        )
        if existing:
            pr = existing[0]
            logger.info("Reusing open pull request #%s for %s", pr.number, branch)
            return Ok(ReviewHandle(url=pr.url, number=pr.number, reused=True))

        pr = await store.create_pull_request(
            head_branch=branch, base=base, title=title, body=body
        )
    except GitHubAPIError as exc:
        return Err(
            ErrorKind.REVIEW_REQUEST_FAILED,
            str(exc),
            status_code=exc.status_code,
            body=exc.body,
        )

    logger.info("Opened pull request #%s for %s into %s", pr.number, branch, base)
    return Ok(ReviewHandle(url=pr.url, number=pr.number, reused=False))


async def merge_review_request(
    store: ContentStoreProtocol, branch: str, base: str
) -> Result[MergeHandle]:
    """Merge the pull request of ``branch`` into ``base``.

    A pull request that is already merged counts as success with
    ``merged=False``. A 405 from GitHub is re-checked: it is success only when
    the pull request turns out to be merged by now, otherwise ``merge_failed``.
    """

    try:
        pulls = await store.list_pull_requests(
            head_branch=branch, base=base, state="all"
        )
    except GitHubAPIError as exc:
        return Err(
            ErrorKind.MERGE_FAILED,
            str(exc),
            status_code=exc.status_code,
            body=exc.body,
        )

    open_pr = next((pr for pr in pulls if pr.state == "open"), None)
    if open_pr is None:
        merged_pr = next((pr for pr in pulls if pr.merged), None)
        if merged_pr is not None:
            return Ok(
                MergeHandle(
                    merged=False,
                    number=merged_pr.number,
                    commit_sha=merged_pr.merge_commit_sha,
                )
            )
        return Err(
            ErrorKind.MERGE_FAILED,
            f"No pull request found for branch '{branch}' into '{base}'.",
            status_code=HTTPStatus.NOT_FOUND,
        )

    try:
        commit_sha = await store.merge_pull_request(
            open_pr.number, commit_title=f"Merge {branch} into {base}"
        )
    except GitHubAPIError as exc:
        if exc.status_code == HTTPStatus.METHOD_NOT_ALLOWED:
            merged_meanwhile = await _find_merged(store, branch, base, open_pr.number)
            if merged_meanwhile is not None:
                logger.info("Pull request #%s was merged concurrently", open_pr.number)
                return Ok(
                    MergeHandle(
                        merged=False,
                        number=merged_meanwhile.number,
                        commit_sha=merged_meanwhile.merge_commit_sha,
                    )
                )
            logger.warning("Pull request #%s is not mergeable: %s", open_pr.number, exc)
        return Err(
            ErrorKind.MERGE_FAILED,
            str(exc),
            status_code=exc.status_code,
            body=exc.body,
        )

    logger.info("Merged pull request #%s (%s)", open_pr.number, commit_sha)
    return Ok(MergeHandle(merged=True, number=open_pr.number, commit_sha=commit_sha))


async def _find_merged(
    store: ContentStoreProtocol, branch: str, base: str, number: int
) -> PullRequestInfo | None:
    try:
        pulls = await store.list_pull_requests(
            head_branch=branch, base=base, state="all"
        )
    except GitHubAPIError:
        logger.warning("Could not re-check pull request #%s after 405", number)
        return None
    return next((pr for pr in pulls if pr.number == number and pr.merged), None)
