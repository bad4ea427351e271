"""API endpoints for tenant documents and change proposals."""

from typing import Any, Dict, Optional

import httpx
from fastapi import APIRouter, Body, Depends, Query
from fastapi.responses import JSONResponse

from src.privacy_gateway import dependencies
from src.privacy_gateway.api.schemas import (
    BundleCreateRequest,
    DraftSaveRequest,
    IdListResponse,
    RopaImportRequest,
    TenantInitRequest,
    XdomeaIngestResponse,
    XdomeaSourceRequest,
)
from src.privacy_gateway.config import GatewaySettings
from src.privacy_gateway.results import ChangeOutcome, Err, ErrorKind, Result
from src.privacy_gateway.services import ChangePipeline, DocumentReader
from src.privacy_gateway.services.change_pipeline import TemplateLoader
from src.privacy_gateway.services.xdomea import (
    XdomeaError,
    as_error,
    fetch_xdomea,
    ingest_xdomea,
    parse_xdomea,
)

router = APIRouter()

write_guard = [Depends(dependencies.require_api_key)]

_REMOTE_KINDS = {
    ErrorKind.BASE_REF_NOT_FOUND,
    ErrorKind.BRANCH_CREATE_FAILED,
    ErrorKind.WRITE_FAILED,
    ErrorKind.REVIEW_REQUEST_FAILED,
    ErrorKind.MERGE_FAILED,
    ErrorKind.SOURCE_FETCH_FAILED,
}


def error_status(error: Err) -> int:
    """Map an error kind (and the remote status it carries) to an HTTP status."""
    if error.kind == ErrorKind.VALIDATION_FAILED:
        return 400
    if error.kind == ErrorKind.UNAUTHORIZED:
        return 401
    if error.kind == ErrorKind.NOT_FOUND:
        return 404
    if error.kind == ErrorKind.WRITE_FAILED and error.status_code == 409:
        return 409
    if error.kind == ErrorKind.MERGE_FAILED and error.status_code == 404:
        return 404
    if error.kind == ErrorKind.MERGE_FAILED and error.status_code == 405:
        # pull request exists but is not mergeable
        return 409
    if error.kind in _REMOTE_KINDS or error.status_code is not None:
        return 502
    return 500


def outcome_response(outcome: ChangeOutcome, success_status: int = 200) -> JSONResponse:
    """Render a pipeline outcome; partial success answers 202."""
    if outcome.error is not None:
        status_code = error_status(outcome.error)
    elif outcome.partial:
        status_code = 202
    else:
        status_code = success_status
    return JSONResponse(status_code=status_code, content=outcome.to_dict())


def result_response(result: Result[Any]) -> Any:
    if isinstance(result, Err):
        return JSONResponse(status_code=error_status(result), content=result.to_dict())
    return result.value


# ----------------------------------------------------------------------------
# Templates
# ----------------------------------------------------------------------------


@router.get("/templates/ssp")
async def get_ssp_template(
    profile: Optional[str] = Query(None, description="OSCAL profile href to import"),
    template_loader: TemplateLoader = Depends(dependencies.get_template_loader),
) -> Dict[str, Any]:
    """Return a fresh SSP template, optionally importing ``profile``."""
    return await template_loader(profile)


# ----------------------------------------------------------------------------
# Tenants
# ----------------------------------------------------------------------------


@router.get("/tenants/{org}")
async def get_tenant(
    org: str,
    ref: Optional[str] = Query(None),
    reader: DocumentReader = Depends(dependencies.get_document_reader),
):
    """Read a tenant's meta.json."""
    return result_response(await reader.tenant_meta(org, ref))


@router.put("/tenants/{org}", dependencies=write_guard)
async def update_tenant(
    org: str,
    meta: Dict[str, Any] = Body(...),
    pipeline: ChangePipeline = Depends(dependencies.get_change_pipeline),
):
    """Propose new tenant metadata."""
    return outcome_response(await pipeline.update_tenant(org, meta))


@router.post("/tenants/{org}/init", dependencies=write_guard)
async def init_tenant(
    org: str,
    request: Optional[TenantInitRequest] = Body(None),
    pipeline: ChangePipeline = Depends(dependencies.get_change_pipeline),
):
    """
    Initialise a tenant.

    Writes meta.json, the default profile pointer (when a profile href is
    given) and a first SSP for ``proc-1`` onto a new ``init/`` branch and
    opens a pull request for it.
    """
    request = request or TenantInitRequest()
    outcome = await pipeline.init_tenant(
        org,
        org_name=request.org_name,
        contact_email=request.contact_email,
        default_profile_href=request.default_profile_href,
    )
    return outcome_response(outcome, success_status=201)


@router.put("/tenants/{org}/save", dependencies=write_guard)
async def save_draft(
    org: str,
    request: DraftSaveRequest,
    ref: str = Query(..., description="Draft branch the editor saves onto"),
    pipeline: ChangePipeline = Depends(dependencies.get_change_pipeline),
):
    """Save an editor draft; repeated saves reuse the branch and its pull request."""
    outcome = await pipeline.save_draft(
        org,
        ref,
        meta=request.meta,
        ssp=request.ssp,
        proc_id=request.proc_id,
        ropa=request.ropa,
    )
    return outcome_response(outcome)


@router.post("/tenants/{org}/merge", dependencies=write_guard)
async def merge_draft(
    org: str,
    ref: str = Query(..., description="Draft branch to merge"),
    base: Optional[str] = Query(None, description="Target branch (default: data base)"),
    pipeline: ChangePipeline = Depends(dependencies.get_change_pipeline),
):
    """Merge the pull request of a draft branch."""
    result = await pipeline.merge(org, ref, base)
    if isinstance(result, Err):
        return JSONResponse(status_code=error_status(result), content=result.to_dict())
    handle = result.value
    return {
        "ok": True,
        "merged": handle.merged,
        "number": handle.number,
        "sha": handle.commit_sha,
        "base": base or pipeline.base_branch,
        "ref": ref,
    }


# ----------------------------------------------------------------------------
# SSP / procedures
# ----------------------------------------------------------------------------


@router.get("/ssp/{org}/{proc}")
@router.get("/tenants/{org}/procedures/{proc}")
async def get_ssp(
    org: str,
    proc: str,
    ref: Optional[str] = Query(None),
    reader: DocumentReader = Depends(dependencies.get_document_reader),
):
    """Read one procedure's SSP."""
    return result_response(await reader.ssp(org, proc, ref))


@router.post("/ssp/{org}/{proc}", dependencies=write_guard)
@router.put("/tenants/{org}/procedures/{proc}", dependencies=write_guard)
async def save_ssp(
    org: str,
    proc: str,
    document: Dict[str, Any] = Body(...),
    ref: Optional[str] = Query(None, description="Existing branch to save onto"),
    pipeline: ChangePipeline = Depends(dependencies.get_change_pipeline),
):
    """Propose a new SSP version; the body must have a ``system-security-plan`` root."""
    return outcome_response(await pipeline.save_ssp(org, proc, document, ref=ref))


@router.get("/tenants/{org}/procedures", response_model=IdListResponse)
async def list_procedures(
    org: str,
    ref: Optional[str] = Query(None),
    reader: DocumentReader = Depends(dependencies.get_document_reader),
):
    """List the procedure ids of a tenant."""
    result = await reader.list_procedures(org, ref)
    if isinstance(result, Err):
        return result_response(result)
    return IdListResponse(org_id=org, items=result.value)


# ----------------------------------------------------------------------------
# RoPA
# ----------------------------------------------------------------------------


@router.get("/ropa/preview")
async def preview_ropa(
    href: Optional[str] = Query(None, description="xDomea source to preview"),
    org: str = Query("demo-org", description="Tenant the preview is meant for"),
    client: httpx.AsyncClient = Depends(dependencies.get_http_client),
):
    """Parse a remote xDomea document without writing anything."""
    if not href:
        return result_response(Err(ErrorKind.VALIDATION_FAILED, "missing href"))
    try:
        text, content_type = await fetch_xdomea(client, href)
        processes = parse_xdomea(text, content_type)
    except XdomeaError as exc:
        return result_response(as_error(exc))
    return {
        "ok": True,
        "orgId": org,
        "ropa": {"processes": [p.to_dict() for p in processes]},
    }


@router.get("/ropa/{org}")
async def get_ropa(
    org: str,
    ref: Optional[str] = Query(None),
    reader: DocumentReader = Depends(dependencies.get_document_reader),
):
    """Read a tenant's RoPA register."""
    return result_response(await reader.ropa(org, ref))


@router.put("/tenants/{org}/ropa", dependencies=write_guard)
async def save_ropa(
    org: str,
    document: Dict[str, Any] = Body(...),
    ref: Optional[str] = Query(None, description="Existing branch to save onto"),
    pipeline: ChangePipeline = Depends(dependencies.get_change_pipeline),
):
    """Propose a new RoPA register."""
    return outcome_response(await pipeline.save_ropa(org, document, ref=ref))


@router.get("/tenants/{org}/ropa", response_model=IdListResponse)
async def list_ropa_processes(
    org: str,
    ref: Optional[str] = Query(None),
    reader: DocumentReader = Depends(dependencies.get_document_reader),
):
    """List the processing activity ids of a tenant."""
    result = await reader.list_ropa_processes(org, ref)
    if isinstance(result, Err):
        return result_response(result)
    return IdListResponse(org_id=org, items=result.value)


@router.post("/tenants/{org}/ropa/import", dependencies=write_guard)
async def import_ropa(
    org: str,
    request: RopaImportRequest,
    pipeline: ChangePipeline = Depends(dependencies.get_change_pipeline),
    client: httpx.AsyncClient = Depends(dependencies.get_http_client),
):
    """Import the processing activities of an xDomea filing plan as RoPA records."""
    try:
        processes = await ingest_xdomea(
            client, url=request.url, xml=request.xml, json_source=request.json_source
        )
    except XdomeaError as exc:
        return result_response(as_error(exc))
    outcome = await pipeline.import_ropa(
        org, processes, source_href=request.url, template=request.template
    )
    return outcome_response(outcome, success_status=201)


@router.get("/tenants/{org}/ropa/{process}")
async def get_ropa_process(
    org: str,
    process: str,
    ref: Optional[str] = Query(None),
    reader: DocumentReader = Depends(dependencies.get_document_reader),
):
    """Read one processing activity record."""
    return result_response(await reader.ropa_process(org, process, ref))


@router.put("/tenants/{org}/ropa/{process}", dependencies=write_guard)
async def save_ropa_process(
    org: str,
    process: str,
    document: Dict[str, Any] = Body(...),
    ref: Optional[str] = Query(None, description="Existing branch to save onto"),
    pipeline: ChangePipeline = Depends(dependencies.get_change_pipeline),
):
    """Propose a new version of one processing activity record."""
    return outcome_response(
        await pipeline.save_ropa_process(org, process, document, ref=ref)
    )


# ----------------------------------------------------------------------------
# xDomea ingestion and bundles
# ----------------------------------------------------------------------------


@router.post("/ingest/xdomea", response_model=XdomeaIngestResponse)
async def ingest_xdomea_source(
    request: XdomeaSourceRequest,
    client: httpx.AsyncClient = Depends(dependencies.get_http_client),
):
    """Parse an xDomea source into processing activities without writing."""
    try:
        processes = await ingest_xdomea(
            client, url=request.url, xml=request.xml, json_source=request.json_source
        )
    except XdomeaError as exc:
        return result_response(as_error(exc))
    return XdomeaIngestResponse(items=[p.to_dict() for p in processes])


@router.post("/tenants/{org}/bundles", dependencies=write_guard)
async def create_bundle(
    org: str,
    request: BundleCreateRequest,
    pipeline: ChangePipeline = Depends(dependencies.get_change_pipeline),
    settings: GatewaySettings = Depends(dependencies.get_gateway_settings),
):
    """Create an SSP bundle for one processing activity."""
    outcome = await pipeline.create_bundle(
        org,
        request.title,
        profile_href=request.profile_href or settings.default_profile_href,
        process_id=request.process_id,
        template=request.template,
    )
    return outcome_response(outcome, success_status=201)


# ----------------------------------------------------------------------------
# Profiles
# ----------------------------------------------------------------------------


@router.get("/tenants/{org}/profiles", response_model=IdListResponse)
async def list_profiles(
    org: str,
    ref: Optional[str] = Query(None),
    reader: DocumentReader = Depends(dependencies.get_document_reader),
):
    """List the profile ids of a tenant."""
    result = await reader.list_profiles(org, ref)
    if isinstance(result, Err):
        return result_response(result)
    return IdListResponse(org_id=org, items=result.value)


@router.get("/tenants/{org}/profiles/{profile}")
async def get_profile(
    org: str,
    profile: str,
    ref: Optional[str] = Query(None),
    reader: DocumentReader = Depends(dependencies.get_document_reader),
):
    """Read one tenant profile."""
    return result_response(await reader.profile(org, profile, ref))


@router.put("/tenants/{org}/profiles/{profile}", dependencies=write_guard)
async def save_profile(
    org: str,
    profile: str,
    document: Dict[str, Any] = Body(...),
    ref: Optional[str] = Query(None, description="Existing branch to save onto"),
    pipeline: ChangePipeline = Depends(dependencies.get_change_pipeline),
):
    """Propose a new version of a tenant profile."""
    return outcome_response(
        await pipeline.save_profile(org, profile, document, ref=ref)
    )
