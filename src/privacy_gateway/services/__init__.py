"""Service modules for the change-proposal pipeline."""

from .branch_provisioner import build_branch_name, ensure_branch, sanitize_branch_name
from .change_pipeline import ChangePipeline, ChangeRequest, ValidationError
from .change_publisher import DocumentFile, put_document, put_documents
from .document_reader import DocumentReader
from .github_content_store import (  # noqa: F401
    GitHubAPIError,
    GitHubConfigurationError,
    GitHubContentStore,
)
from .review_requests import merge_review_request, open_or_reuse_review_request
from .ssp_template import build_ssp_template, load_ssp_template
from .tenant_paths import TenantPaths, sanitize_id
from .xdomea import RopaProcess, XdomeaError, ingest_xdomea, parse_xdomea

__all__ = [
    "ChangePipeline",
    "ChangeRequest",
    "DocumentFile",
    "DocumentReader",
    "GitHubAPIError",
    "GitHubConfigurationError",
    "GitHubContentStore",
    "RopaProcess",
    "TenantPaths",
    "ValidationError",
    "XdomeaError",
    "build_branch_name",
    "build_ssp_template",
    "ensure_branch",
    "ingest_xdomea",
    "load_ssp_template",
    "merge_review_request",
    "open_or_reuse_review_request",
    "parse_xdomea",
    "put_document",
    "put_documents",
    "sanitize_branch_name",
    "sanitize_id",
]
