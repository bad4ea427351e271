"""Branch naming and idempotent branch creation."""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from http import HTTPStatus
from typing import Callable

from src.privacy_gateway.protocols import ContentStoreProtocol
from src.privacy_gateway.results import BranchHandle, Err, ErrorKind, Ok, Result
from src.privacy_gateway.services.github_content_store import GitHubAPIError

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

_FORBIDDEN = re.compile(r"[\x00-\x20\x7f:?*\[\]^~\\]+|\.{2,}|@\{")
_REPEATED_DASH = re.compile(r"-{2,}")
_REPEATED_SLASH = re.compile(r"/{2,}")
_ALREADY_EXISTS = "already exists"


def utc_now() -> datetime:
    """Return the current UTC datetime."""

    return datetime.now(timezone.utc)


def timestamp_token(clock: Clock = utc_now) -> str:
    """Render ``clock()`` as ``2024-01-01T00-00-00-000Z``."""
    now = clock().astimezone(timezone.utc)
    return now.strftime("%Y-%m-%dT%H-%M-%S-") + f"{now.microsecond // 1000:03d}Z"


def sanitize_branch_name(name: str) -> str:
    """Rewrite ``name`` into a valid git ref name.

    Forbidden characters become ``-``, runs of ``-`` and ``/`` collapse to
    one, and every path component loses leading/trailing ``-`` and ``.``.
    Returns an empty string when nothing usable remains.
    """
    candidate = _FORBIDDEN.sub("-", name.strip())
    candidate = _REPEATED_DASH.sub("-", candidate)
    candidate = _REPEATED_SLASH.sub("/", candidate)

    components = []
    for component in candidate.split("/"):
        component = component.strip("-.")
        if component.endswith(".lock"):
            component = component[: -len(".lock")].rstrip("-.")
        if component:
            components.append(component)
    return "/".join(components)


def build_branch_name(prefix: str, *key_parts: str, clock: Clock = utc_now) -> str:
    """Derive ``prefix/part-part-<timestamp>`` for one logical change."""
    stem = "-".join(part for part in key_parts if part)
    return sanitize_branch_name(f"{prefix}/{stem}-{timestamp_token(clock)}")


async def ensure_branch(
    store: ContentStoreProtocol, base_ref: str, desired_branch: str
) -> Result[BranchHandle]:
    """Create ``desired_branch`` at the tip of ``base_ref``, reusing it if present."""

    branch_name = sanitize_branch_name(desired_branch)
    if not branch_name:
        return Err(
            ErrorKind.BRANCH_CREATE_FAILED,
            f"Branch name '{desired_branch}' is empty after sanitization.",
        )

    try:
        base_sha = await store.get_ref_sha(base_ref)
    except GitHubAPIError as exc:
        if exc.status_code == HTTPStatus.NOT_FOUND:
            return Err(
                ErrorKind.BASE_REF_NOT_FOUND,
                f"Base reference '{base_ref}' does not exist: {exc}",
                status_code=exc.status_code,
                body=exc.body,
            )
        return Err(
            ErrorKind.BRANCH_CREATE_FAILED,
            f"Base reference '{base_ref}' could not be resolved: {exc}",
            status_code=exc.status_code,
            body=exc.body,
        )

    try:
        await store.create_ref(branch_name, base_sha)
    except GitHubAPIError as exc:
        if _is_already_exists(exc):
            logger.info("Reusing existing branch %s", branch_name)
            return Ok(BranchHandle(name=branch_name, base=base_ref, created=False))
        return Err(
            ErrorKind.BRANCH_CREATE_FAILED,
            str(exc),
            status_code=exc.status_code,
            body=exc.body,
        )

    logger.info("Created branch %s from %s at %s", branch_name, base_ref, base_sha)
    return Ok(BranchHandle(name=branch_name, base=base_ref, created=True))


def _is_already_exists(exc: GitHubAPIError) -> bool:
    if exc.status_code != HTTPStatus.UNPROCESSABLE_ENTITY:
        return False
    text = f"{exc} {exc.remote_message or ''}".lower()
    return _ALREADY_EXISTS in text
