"""Main application configuration for the privacy gateway."""

from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_TEMPLATE_SSP_HREF = (
    "https://raw.githubusercontent.com/open-gov-group/opengov-privacy-oscal/"
    "main/oscal/ssp/ssp_template_ropa.json"
)


class GatewaySettings(BaseSettings):
    """The configurable fields for the gateway application."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    mode: str = Field(
        default="mock",
        title="Mode",
        description="'mock' serves an in-memory store and skips API keys; 'prod' talks to GitHub.",
        alias="MODE",
    )
    app_api_key: str | None = Field(
        default=None,
        title="API Key",
        description="Shared secret expected in the x-api-key header of write requests.",
        alias="APP_API_KEY",
    )
    allow_origin: str = Field(
        default="*",
        title="Allowed Origin",
        description="Value for the CORS allow-origin header.",
        alias="ALLOW_ORIGIN",
    )
    default_profile_href: str | None = Field(
        default=None,
        title="Default Profile",
        description="OSCAL profile href injected into generated SSP templates.",
        alias="DEFAULT_PROFILE_HREF",
    )
    template_ssp_href: str | None = Field(
        default=None,
        title="SSP Template",
        description="URL of an SSP template tried before the built-in default.",
        alias="TEMPLATE_SSP_HREF",
    )
    log_level: str = Field(
        default="INFO",
        title="Log Level",
        description="Root logging level.",
        alias="LOG_LEVEL",
    )

    @field_validator("mode", mode="before")
    @classmethod
    def parse_mode(cls, value: Any) -> str:
        """Normalise the mode; anything starting with 'mock' counts as mock."""
        normalized = str(value or "mock").strip().lower()
        return "mock" if normalized.startswith("mock") else normalized

    @property
    def use_mock_github(self) -> bool:
        """Return True when the in-memory store should replace GitHub."""
        return self.mode == "mock"

    @property
    def template_candidates(self) -> list[str]:
        """SSP template URLs in the order they should be tried."""
        candidates = []
        if self.template_ssp_href:
            candidates.append(self.template_ssp_href)
        candidates.append(DEFAULT_TEMPLATE_SSP_HREF)
        return candidates
