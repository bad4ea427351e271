"""Configuration module for the privacy gateway."""

from .data_repo_settings import DataRepoSettings
from .gateway_settings import DEFAULT_TEMPLATE_SSP_HREF, GatewaySettings

__all__ = [
    "DataRepoSettings",
    "GatewaySettings",
    "DEFAULT_TEMPLATE_SSP_HREF",
]
