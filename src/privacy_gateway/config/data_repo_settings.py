"""GitHub data repository settings for the privacy gateway."""

from __future__ import annotations

from pydantic import Field, HttpUrl, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DataRepoSettings(BaseSettings):
    """Coordinates and credentials of the repository that stores tenant documents."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    github_token: SecretStr | None = Field(
        default=None,
        alias="GH_TOKEN_DATA",
        description="Personal Access Token with contents and pull request scopes.",
    )
    data_owner: str | None = Field(
        default=None,
        alias="DATA_OWNER",
        description="Owner (user or organisation) of the data repository.",
    )
    data_repo: str | None = Field(
        default=None,
        alias="DATA_REPO",
        description="Name of the data repository.",
    )
    data_base: str = Field(
        default="main",
        alias="DATA_BASE",
        description="Base branch that all changes are proposed against.",
    )
    data_root: str = Field(
        default="data",
        alias="DATA_ROOT",
        description="Directory inside the repository that holds the tenant tree.",
    )
    github_api_url: HttpUrl = Field(
        default="https://api.github.com",
        alias="GITHUB_API_URL",
        description="Base URL for the GitHub REST API.",
    )
    github_raw_url: HttpUrl = Field(
        default="https://raw.githubusercontent.com",
        alias="GITHUB_RAW_URL",
        description="Base URL for raw file downloads.",
    )
    github_api_version: str = Field(
        default="2022-11-28",
        alias="GITHUB_API_VERSION",
        description="GitHub API version to use for requests.",
    )
    github_timeout_seconds: float = Field(
        default=20.0,
        alias="GITHUB_TIMEOUT_SECONDS",
        description="Per-request timeout; requests are never retried.",
    )

    @field_validator("data_root", mode="after")
    @classmethod
    def strip_data_root(cls, value: str) -> str:
        """Normalise the data root so paths never contain doubled slashes."""
        return value.strip().strip("/")
