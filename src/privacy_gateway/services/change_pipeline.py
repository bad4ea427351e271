"""Branch -> write -> pull request orchestration for tenant documents."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Sequence

from src.privacy_gateway.protocols import ContentStoreProtocol
from src.privacy_gateway.results import (
    ChangeOutcome,
    Err,
    ErrorKind,
    MergeHandle,
    PipelineStage,
    Result,
)
from src.privacy_gateway.services.branch_provisioner import (
    Clock,
    build_branch_name,
    ensure_branch,
    sanitize_branch_name,
    utc_now,
)
from src.privacy_gateway.services.change_publisher import DocumentFile, put_documents
from src.privacy_gateway.services.review_requests import (
    merge_review_request,
    open_or_reuse_review_request,
)
from src.privacy_gateway.services.ssp_template import SSP_ROOT_KEY, build_ssp_template
from src.privacy_gateway.services.tenant_paths import (
    DEFAULT_PROCEDURE_ID,
    DEFAULT_PROFILE_ID,
    ROPA_REGISTER_ID,
    TenantPaths,
    sanitize_id,
)
from src.privacy_gateway.services.xdomea import RopaProcess, slugify

logger = logging.getLogger(__name__)

TemplateLoader = Callable[[str | None], Awaitable[dict[str, Any]]]

TENANT_META_VERSION = "0.1.0"
TEMPLATE_MODES = ("minimal", "process")


class ValidationError(ValueError):
    """Raised for malformed caller input before any remote call is made."""


async def _builtin_template(profile_href: str | None) -> dict[str, Any]:
    return build_ssp_template(profile_href)


@dataclass(slots=True)
class ChangeRequest:
    """One logical change: a branch, the files to put on it and the PR text."""

    branch: str
    files: list[DocumentFile]
    title: str
    body: str
    details: dict[str, Any] = field(default_factory=dict)


def require_root_key(document: Any, key: str) -> dict[str, Any]:
    """Ensure ``document`` is a JSON object whose ``key`` holds an object."""
    if not isinstance(document, dict):
        raise ValidationError("Document must be a JSON object.")
    if not isinstance(document.get(key), dict):
        raise ValidationError(f"Missing '{key}' root.")
    return document


def require_object(document: Any, name: str) -> dict[str, Any]:
    if not isinstance(document, dict):
        raise ValidationError(f"'{name}' must be a JSON object.")
    return document


class ChangePipeline:
    """Runs tenant document changes through branch, write and review steps.

    Every flow validates its input first, then moves through
    ``START -> BRANCH_READY -> FILES_WRITTEN -> REVIEW_OPEN -> DONE``. A
    branch or write failure ends the run; a review failure leaves the files
    committed on the branch and is reported as partial success.
    """

    def __init__(
        self,
        store: ContentStoreProtocol,
        *,
        data_root: str = "data",
        base_branch: str | None = None,
        template_loader: TemplateLoader | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._data_root = data_root
        self._base = base_branch or store.base_branch
        self._template_loader = template_loader or _builtin_template
        self._clock = clock

    @property
    def base_branch(self) -> str:
        return self._base

    async def run(self, request: ChangeRequest) -> ChangeOutcome:
        """Execute one change request end to end."""
        outcome = ChangeOutcome(stage=PipelineStage.START, details=request.details)

        branch = await ensure_branch(self._store, self._base, request.branch)
        if isinstance(branch, Err):
            logger.error("Branch step failed for %s: %s", request.branch, branch.detail)
            return outcome.fail("branch", branch)
        outcome.branch = branch.value.name
        outcome.stage = PipelineStage.BRANCH_READY

        written, write_error = await put_documents(
            self._store, outcome.branch, request.files
        )
        outcome.writes = written
        if write_error is not None:
            logger.error(
                "Write step failed on %s at %s (status %s)",
                outcome.branch,
                write_error.path,
                write_error.status_code,
            )
            return outcome.fail("write", write_error)
        outcome.stage = PipelineStage.FILES_WRITTEN

        review = await open_or_reuse_review_request(
            self._store, outcome.branch, self._base, request.title, request.body
        )
        if isinstance(review, Err):
            logger.warning(
                "Files committed on %s but no pull request: %s",
                outcome.branch,
                review.detail,
            )
            outcome.advisory = review
            return outcome
        outcome.review = review.value
        outcome.stage = PipelineStage.REVIEW_OPEN

        outcome.stage = PipelineStage.DONE
        return outcome

    # ------------------------------------------------------------------
    # Tenant flows
    # ------------------------------------------------------------------

    async def init_tenant(
        self,
        org_id: str,
        *,
        org_name: str = "",
        contact_email: str = "",
        default_profile_href: str | None = None,
    ) -> ChangeOutcome:
        """Create meta.json, the default profile pointer and a first SSP."""
        try:
            paths = self._paths(org_id)
        except ValidationError as exc:
            return self._invalid(exc)

        now = self._now()
        meta = {
            "orgId": paths.org_id,
            "orgName": org_name.strip(),
            "contactEmail": contact_email.strip(),
            "createdAt": now,
            "updatedAt": now,
            "version": TENANT_META_VERSION,
        }
        profile_href = (default_profile_href or "").strip() or None
        ssp = await self._template_loader(profile_href)

        files = [DocumentFile(paths.meta, meta, f"chore(tenant): add {paths.meta}")]
        if profile_href:
            profile_path = paths.profile(DEFAULT_PROFILE_ID)
            files.append(
                DocumentFile(
                    profile_path,
                    {"href": profile_href},
                    f"chore(tenant): add {profile_path}",
                )
            )
        ssp_path = paths.ssp(DEFAULT_PROCEDURE_ID)
        files.append(DocumentFile(ssp_path, ssp, f"chore(tenant): add {ssp_path}"))

        branch = build_branch_name("init", paths.org_id, clock=self._clock)
        return await self.run(
            ChangeRequest(
                branch=branch,
                files=files,
                title=f"feat(tenant): init {paths.org_id}",
                body=f"Automated init at {now}",
                details={
                    "orgId": paths.org_id,
                    "next": {"sspBundleHref": self._store.raw_url(ssp_path, branch)},
                },
            )
        )

    async def update_tenant(self, org_id: str, meta: Any) -> ChangeOutcome:
        """Overwrite meta.json with ``meta`` stamped with orgId/updatedAt."""
        try:
            paths = self._paths(org_id)
            document = {
                **require_object(meta, "meta"),
                "orgId": paths.org_id,
                "updatedAt": self._now(),
            }
        except ValidationError as exc:
            return self._invalid(exc)

        return await self.run(
            ChangeRequest(
                branch=build_branch_name("update", paths.org_id, clock=self._clock),
                files=[
                    DocumentFile(
                        paths.meta, document, f"chore(tenant): update {paths.meta}"
                    )
                ],
                title=f"chore(tenant): update {paths.org_id}",
                body="Automated update",
                details={"orgId": paths.org_id, "metaPath": paths.meta},
            )
        )

    async def save_draft(
        self,
        org_id: str,
        ref: str,
        *,
        meta: Any = None,
        ssp: Any = None,
        proc_id: str | None = None,
        ropa: Any = None,
    ) -> ChangeOutcome:
        """Save an editor draft onto the caller's branch ``ref``.

        Repeated saves with the same ``ref`` land on the same branch and the
        same pull request.
        """
        try:
            paths = self._paths(org_id)
            branch = self._require_ref(ref)
            files: list[DocumentFile] = []
            if meta is not None:
                document = {
                    **require_object(meta, "meta"),
                    "orgId": paths.org_id,
                    "updatedAt": self._now(),
                }
                files.append(
                    DocumentFile(paths.meta, document, f"draft(tenant): save {paths.meta}")
                )
            if ssp is not None:
                proc = self._id(proc_id or DEFAULT_PROCEDURE_ID, "procedure id")
                require_root_key(ssp, SSP_ROOT_KEY)
                files.append(
                    DocumentFile(paths.ssp(proc), ssp, f"draft(ssp): save {paths.ssp(proc)}")
                )
            if ropa is not None:
                files.append(
                    DocumentFile(
                        paths.ropa,
                        require_object(ropa, "ropa"),
                        f"draft(ropa): save {paths.ropa}",
                    )
                )
            if not files:
                raise ValidationError("Nothing to save: provide meta, ssp or ropa.")
        except ValidationError as exc:
            return self._invalid(exc)

        return await self.run(
            ChangeRequest(
                branch=branch,
                files=files,
                title=f"draft(tenant): {paths.org_id} ({branch})",
                body=f"Draft saved via API at {self._now()}",
                details={"orgId": paths.org_id},
            )
        )

    async def save_ssp(
        self, org_id: str, proc_id: str, document: Any, *, ref: str | None = None
    ) -> ChangeOutcome:
        """Propose a new version of one procedure's SSP."""
        try:
            paths = self._paths(org_id)
            proc = self._id(proc_id, "procedure id")
            require_root_key(document, SSP_ROOT_KEY)
            branch = (
                self._require_ref(ref)
                if ref
                else build_branch_name("update", paths.org_id, proc, clock=self._clock)
            )
        except ValidationError as exc:
            return self._invalid(exc)

        path = paths.ssp(proc)
        return await self.run(
            ChangeRequest(
                branch=branch,
                files=[
                    DocumentFile(
                        path, document, f"chore(ssp): update {paths.org_id}/{proc} via API"
                    )
                ],
                title=f"Update SSP: {paths.org_id}/{proc}",
                body=f"Automated update via API ({self._now()})",
                details={"path": path},
            )
        )

    async def save_ropa(
        self, org_id: str, document: Any, *, ref: str | None = None
    ) -> ChangeOutcome:
        """Propose a new version of the tenant's RoPA register."""
        try:
            paths = self._paths(org_id)
            require_object(document, "ropa")
            branch = (
                self._require_ref(ref)
                if ref
                else build_branch_name("ropa", paths.org_id, clock=self._clock)
            )
        except ValidationError as exc:
            return self._invalid(exc)

        return await self.run(
            ChangeRequest(
                branch=branch,
                files=[
                    DocumentFile(
                        paths.ropa, document, f"feat(ropa): {paths.org_id} update"
                    )
                ],
                title=f"[RoPA] {paths.org_id}",
                body=f"Automated update via API ({self._now()})",
                details={"path": paths.ropa},
            )
        )

    async def save_ropa_process(
        self,
        org_id: str,
        process_id: str,
        document: Any,
        *,
        ref: str | None = None,
    ) -> ChangeOutcome:
        """Propose a new version of one processing activity record."""
        try:
            paths = self._paths(org_id)
            process = self._process_id(process_id)
            require_object(document, "process")
            branch = (
                self._require_ref(ref)
                if ref
                else build_branch_name("ropa", paths.org_id, process, clock=self._clock)
            )
        except ValidationError as exc:
            return self._invalid(exc)

        path = paths.ropa_process(process)
        return await self.run(
            ChangeRequest(
                branch=branch,
                files=[
                    DocumentFile(
                        path, document, f"feat(ropa): {paths.org_id}/{process} update"
                    )
                ],
                title=f"[RoPA] {paths.org_id}/{process}",
                body=f"Automated update via API ({self._now()})",
                details={"path": path, "processId": process},
            )
        )

    async def import_ropa(
        self,
        org_id: str,
        processes: Sequence[RopaProcess],
        *,
        source_href: str | None = None,
        template: str | None = None,
    ) -> ChangeOutcome:
        """Write one RoPA record per imported process onto a single branch.

        With ``template="process"`` every process also gets a starter SSP
        under ``procedures/<process-id>/``.
        """
        try:
            paths = self._paths(org_id)
            mode = self._template_mode(template)
            if not processes:
                raise ValidationError("The xDomea source contains no processes.")
            for process in processes:
                self._process_id(process.id)
        except ValidationError as exc:
            return self._invalid(exc)

        branch = build_branch_name("ropa", paths.org_id, "import", clock=self._clock)
        now = self._now()
        files: list[DocumentFile] = []
        for process in processes:
            record = {
                "id": process.id,
                "title": process.title,
                "source": "xdomea",
                "importedAt": now,
            }
            if source_href:
                record["sourceHref"] = source_href
            path = paths.ropa_process(process.id)
            files.append(
                DocumentFile(path, record, f"feat(ropa): import {paths.org_id}/{process.id}")
            )
            if mode == "process":
                ssp = build_ssp_template(title=f"SSP – {process.title}", clock=self._clock)
                ssp_path = paths.ssp(process.id)
                files.append(
                    DocumentFile(ssp_path, ssp, f"feat(ssp): add {paths.org_id}/{process.id}")
                )

        return await self.run(
            ChangeRequest(
                branch=branch,
                files=files,
                title=f"[RoPA] {paths.org_id}: xDomea import ({len(processes)} processes)",
                body="\n".join(f"- {p.id}: {p.title}" for p in processes),
                details={
                    "orgId": paths.org_id,
                    "created": [p.id for p in processes],
                    "next": {
                        "processes": [
                            self._store.raw_url(paths.ropa_process(p.id), branch)
                            for p in processes
                        ]
                    },
                },
            )
        )

    async def create_bundle(
        self,
        org_id: str,
        title: str,
        *,
        profile_href: str | None = None,
        process_id: str | None = None,
        template: str | None = None,
    ) -> ChangeOutcome:
        """Create an SSP bundle for one processing activity.

        ``template="process"`` starts from the configured template source;
        the default ``"minimal"`` uses the built-in SSP.
        """
        try:
            paths = self._paths(org_id)
            title = (title or "").strip()
            if not title:
                raise ValidationError("missing title")
            mode = self._template_mode(template)
            slug = sanitize_id(process_id) if process_id else slugify(title)
            if not slug:
                raise ValidationError(f"Invalid process id: '{process_id or title}'.")
        except ValidationError as exc:
            return self._invalid(exc)

        profile_href = (profile_href or "").strip() or None
        millis = int(self._clock().timestamp() * 1000)
        bundle_id = f"bundle-{millis % 1_000_000:06d}"
        if mode == "process":
            loaded = await self._template_loader(profile_href)
            ssp = build_ssp_template(profile_href, loaded, clock=self._clock)
            ssp[SSP_ROOT_KEY]["metadata"]["title"] = title
        else:
            ssp = build_ssp_template(profile_href, title=title, clock=self._clock)
        meta = {
            "bundleId": bundle_id,
            "orgId": paths.org_id,
            "title": title,
            "slug": slug,
            "profileHref": profile_href,
            "createdAt": self._now(),
        }

        branch = build_branch_name("bundle", paths.org_id, bundle_id, clock=self._clock)
        ssp_path = paths.bundle_ssp(bundle_id)
        meta_path = paths.bundle_meta(bundle_id)
        return await self.run(
            ChangeRequest(
                branch=branch,
                files=[
                    DocumentFile(meta_path, meta, f"feat(bundle): add {meta_path}"),
                    DocumentFile(ssp_path, ssp, f"feat(bundle): add {ssp_path}"),
                ],
                title=f"[Bundle] {paths.org_id}/{bundle_id}: {title}",
                body=f"Bundle for '{slug}' created via API ({self._now()})",
                details={
                    "orgId": paths.org_id,
                    "bundleId": bundle_id,
                    "slug": slug,
                    "sspHref": self._store.raw_url(ssp_path, branch),
                },
            )
        )

    async def save_profile(
        self, org_id: str, profile_id: str, document: Any, *, ref: str | None = None
    ) -> ChangeOutcome:
        """Propose a new version of one tenant profile."""
        try:
            paths = self._paths(org_id)
            profile = self._id(profile_id, "profile id")
            require_object(document, "profile")
            branch = (
                self._require_ref(ref)
                if ref
                else build_branch_name("profile", paths.org_id, profile, clock=self._clock)
            )
        except ValidationError as exc:
            return self._invalid(exc)

        path = paths.profile(profile)
        return await self.run(
            ChangeRequest(
                branch=branch,
                files=[
                    DocumentFile(
                        path, document, f"feat(profile): {paths.org_id}/{profile} update"
                    )
                ],
                title=f"[Profile] {paths.org_id}/{profile}",
                body=f"Automated update via API ({self._now()})",
                details={"path": path},
            )
        )

    async def merge(
        self, org_id: str, ref: str, base: str | None = None
    ) -> Result[MergeHandle]:
        """Merge the pull request of draft branch ``ref``."""
        try:
            self._paths(org_id)
            branch = self._require_ref(ref)
        except ValidationError as exc:
            return Err(ErrorKind.VALIDATION_FAILED, str(exc))
        return await merge_review_request(self._store, branch, base or self._base)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _paths(self, org_id: str) -> TenantPaths:
        return TenantPaths(self._data_root, self._id(org_id, "org id"))

    def _id(self, value: str, name: str) -> str:
        cleaned = sanitize_id(value)
        if not cleaned:
            raise ValidationError(f"Invalid {name}: '{value}'.")
        return cleaned

    def _process_id(self, value: str) -> str:
        process = self._id(value, "process id")
        if process == ROPA_REGISTER_ID:
            raise ValidationError(f"'{ROPA_REGISTER_ID}' is reserved for the register.")
        return process

    def _template_mode(self, template: str | None) -> str:
        mode = (template or "minimal").strip().lower()
        if mode not in TEMPLATE_MODES:
            raise ValidationError(
                f"Unknown template '{template}'; use one of {', '.join(TEMPLATE_MODES)}."
            )
        return mode

    def _require_ref(self, ref: str | None) -> str:
        branch = sanitize_branch_name(ref or "")
        if not branch:
            raise ValidationError("Missing or invalid ref.")
        if branch == self._base:
            raise ValidationError("ref must not be the base branch.")
        return branch

    def _now(self) -> str:
        return self._clock().isoformat()

    def _invalid(self, exc: ValidationError) -> ChangeOutcome:
        return ChangeOutcome().fail(
            "validation", Err(ErrorKind.VALIDATION_FAILED, str(exc))
        )
