"""Tagged result types returned by the change-proposal pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar, Union

T = TypeVar("T")


class ErrorKind(str, Enum):
    """Stable error identifiers surfaced to API callers."""

    BASE_REF_NOT_FOUND = "base_ref_not_found"
    BRANCH_CREATE_FAILED = "branch_create_failed"
    WRITE_FAILED = "write_failed"
    REVIEW_REQUEST_FAILED = "review_request_failed"
    MERGE_FAILED = "merge_failed"
    VALIDATION_FAILED = "validation_failed"
    NOT_FOUND = "not_found"
    UNAUTHORIZED = "unauthorized"
    SERVER_ERROR = "server_error"
    SOURCE_FETCH_FAILED = "source_fetch_failed"


class PipelineStage(str, Enum):
    """States a single logical change passes through."""

    START = "start"
    BRANCH_READY = "branch_ready"
    FILES_WRITTEN = "files_written"
    REVIEW_OPEN = "review_open"
    DONE = "done"
    FAILED = "failed"


@dataclass(slots=True, frozen=True)
class Ok(Generic[T]):
    """Successful step carrying its value."""

    value: T
    ok: bool = field(default=True, init=False)


@dataclass(slots=True, frozen=True)
class Err:
    """Failed step.

    ``status_code`` and ``body`` hold the remote store's response verbatim
    when the failure came from GitHub. ``path`` names the file a write
    failed on.
    """

    kind: ErrorKind
    detail: str
    status_code: int | None = None
    body: str | None = None
    path: str | None = None
    ok: bool = field(default=False, init=False)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "ok": False,
            "error": self.kind.value,
            "detail": self.detail,
        }
        if self.status_code is not None:
            payload["status"] = self.status_code
        if self.body:
            payload["remote"] = self.body
        return payload


Result = Union[Ok[T], Err]


@dataclass(slots=True, frozen=True)
class BranchHandle:
    name: str
    base: str
    created: bool


@dataclass(slots=True, frozen=True)
class WriteHandle:
    path: str
    branch: str
    content_sha: str | None
    commit_sha: str | None


@dataclass(slots=True, frozen=True)
class ReviewHandle:
    url: str
    number: int
    reused: bool


@dataclass(slots=True, frozen=True)
class MergeHandle:
    merged: bool
    number: int | None
    commit_sha: str | None


@dataclass(slots=True)
class ChangeOutcome:
    """Final report of one pipeline run.

    ``ok`` is True for both complete and partial success; ``partial`` marks a
    run whose files are committed on ``branch`` but whose review request
    could not be opened.
    """

    stage: PipelineStage = PipelineStage.START
    branch: str | None = None
    writes: list[WriteHandle] = field(default_factory=list)
    review: ReviewHandle | None = None
    error: Err | None = None
    failed_stage: str | None = None
    advisory: Err | None = None
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def partial(self) -> bool:
        return self.error is None and self.advisory is not None

    def fail(self, stage: str, error: Err) -> ChangeOutcome:
        self.stage = PipelineStage.FAILED
        self.failed_stage = stage
        self.error = error
        return self

    def to_dict(self) -> dict[str, Any]:
        if self.error is not None:
            payload = self.error.to_dict()
            payload["stage"] = self.failed_stage
            if self.branch:
                payload["branch"] = self.branch
            if self.writes:
                payload["written"] = [w.path for w in self.writes]
            return payload

        payload = {
            "ok": True,
            "status": "partial" if self.partial else "done",
            "branch": self.branch,
            "reviewUrl": self.review.url if self.review else None,
            "reviewNumber": self.review.number if self.review else None,
            "reviewReused": self.review.reused if self.review else False,
            "paths": [w.path for w in self.writes],
        }
        if self.advisory is not None:
            payload["advisory"] = self.advisory.to_dict()
        payload.update(self.details)
        return payload
