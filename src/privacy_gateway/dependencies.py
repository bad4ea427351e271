"""Central dependency injection hub for the privacy gateway using FastAPI's Depends mechanism."""

import logging
import secrets
from functools import lru_cache
from typing import Any, AsyncGenerator

import httpx
from fastapi import Depends, Header, HTTPException

from dev.mocks.clients import MockContentStore
from src.privacy_gateway.config import DataRepoSettings, GatewaySettings
from src.privacy_gateway.protocols import ContentStoreProtocol
from src.privacy_gateway.results import Err, ErrorKind
from src.privacy_gateway.services import (
    ChangePipeline,
    DocumentReader,
    GitHubContentStore,
    build_ssp_template,
    load_ssp_template,
)
from src.privacy_gateway.services.change_pipeline import TemplateLoader

logger = logging.getLogger(__name__)

# ============================================================================
# Configuration Providers
# ============================================================================


@lru_cache()
def get_gateway_settings() -> GatewaySettings:
    """Get the gateway settings singleton."""
    return GatewaySettings()


@lru_cache()
def get_data_repo_settings() -> DataRepoSettings:
    """Get the data repository settings singleton."""
    return DataRepoSettings()


# ============================================================================
# Content Store Providers
# ============================================================================


@lru_cache()
def get_mock_content_store() -> MockContentStore:
    """
    Get the in-memory content store shared by every request in mock mode.

    Returns:
        MockContentStore seeded with the configured owner, repo and base branch
    """
    data_settings = get_data_repo_settings()
    return MockContentStore(
        owner=data_settings.data_owner or "open-gov-group",
        repo=data_settings.data_repo or "opengov-privacy-data",
        base_branch=data_settings.data_base,
    )


async def get_content_store(
    settings: GatewaySettings = Depends(get_gateway_settings),
    data_settings: DataRepoSettings = Depends(get_data_repo_settings),
) -> AsyncGenerator[ContentStoreProtocol, None]:
    """
    Provide the content store for one request.

    Args:
        settings: Gateway settings for mock configuration.
        data_settings: Data repository coordinates and credentials.

    Yields:
        ContentStoreProtocol implementation (mock or GitHub based on settings).
    """
    if settings.use_mock_github:
        yield get_mock_content_store()
        return

    store = GitHubContentStore.from_settings(data_settings)
    try:
        yield store
    finally:
        await store.aclose()


async def get_http_client(
    data_settings: DataRepoSettings = Depends(get_data_repo_settings),
) -> AsyncGenerator[httpx.AsyncClient, None]:
    """
    Provide an HTTP client for fetching external documents (xDomea sources).

    Yields:
        httpx.AsyncClient closed when the request finishes
    """
    async with httpx.AsyncClient(
        timeout=data_settings.github_timeout_seconds,
        follow_redirects=True,
    ) as client:
        yield client


# ============================================================================
# Service Providers
# ============================================================================


def get_template_loader(
    settings: GatewaySettings = Depends(get_gateway_settings),
    data_settings: DataRepoSettings = Depends(get_data_repo_settings),
) -> TemplateLoader:
    """
    Get the SSP template loader.

    Mock mode never leaves the process and always uses the built-in template.
    """

    async def builtin(profile_href: str | None) -> dict[str, Any]:
        return build_ssp_template(profile_href or settings.default_profile_href)

    if settings.use_mock_github:
        return builtin

    async def remote(profile_href: str | None) -> dict[str, Any]:
        async with httpx.AsyncClient(
            timeout=data_settings.github_timeout_seconds,
            follow_redirects=True,
        ) as client:
            return await load_ssp_template(
                client,
                settings.template_candidates,
                profile_href or settings.default_profile_href,
            )

    return remote


def get_change_pipeline(
    store: ContentStoreProtocol = Depends(get_content_store),
    data_settings: DataRepoSettings = Depends(get_data_repo_settings),
    template_loader: TemplateLoader = Depends(get_template_loader),
) -> ChangePipeline:
    """
    Get the change pipeline bound to the request's content store.

    Args:
        store: Content store for the request
        data_settings: Supplies the data root and base branch
        template_loader: Source of SSP templates for tenant init

    Returns:
        ChangePipeline writing below the configured data root
    """
    return ChangePipeline(
        store,
        data_root=data_settings.data_root,
        base_branch=data_settings.data_base,
        template_loader=template_loader,
    )


def get_document_reader(
    store: ContentStoreProtocol = Depends(get_content_store),
    data_settings: DataRepoSettings = Depends(get_data_repo_settings),
) -> DocumentReader:
    """Get the read-only document reader for the base branch."""
    return DocumentReader(
        store,
        data_root=data_settings.data_root,
        default_ref=data_settings.data_base,
    )


# ============================================================================
# Security
# ============================================================================


def require_api_key(
    x_api_key: str | None = Header(default=None),
    settings: GatewaySettings = Depends(get_gateway_settings),
) -> None:
    """
    Reject write requests without the shared ``x-api-key`` secret.

    Mock mode accepts every request.

    Raises:
        HTTPException: 401 when the key is missing or does not match
    """
    if settings.use_mock_github:
        return
    expected = settings.app_api_key
    if not expected or not x_api_key or not secrets.compare_digest(x_api_key, expected):
        logger.warning("Rejected write request with missing or invalid API key")
        raise HTTPException(
            status_code=401,
            detail=Err(ErrorKind.UNAUTHORIZED, "Missing or invalid x-api-key.").to_dict(),
        )
