"""Unit tests for the dependency injection system."""

import pytest
from fastapi import HTTPException
from pydantic import SecretStr

from dev.mocks.clients import MockContentStore
from src.privacy_gateway import dependencies
from src.privacy_gateway.config import DataRepoSettings, GatewaySettings
from src.privacy_gateway.services import (
    ChangePipeline,
    DocumentReader,
    GitHubConfigurationError,
    GitHubContentStore,
)
from src.privacy_gateway.services.ssp_template import SSP_ROOT_KEY


class TestConfigurationProviders:
    """Test configuration provider functions."""

    def test_get_gateway_settings(self):
        settings = dependencies.get_gateway_settings()
        assert isinstance(settings, GatewaySettings)

    def test_get_data_repo_settings(self):
        settings = dependencies.get_data_repo_settings()
        assert isinstance(settings, DataRepoSettings)

    def test_settings_are_cached(self):
        """Settings providers should use lru_cache and return the same instance."""
        settings1 = dependencies.get_gateway_settings()
        settings2 = dependencies.get_gateway_settings()
        assert settings1 is settings2


class TestContentStoreProvider:
    """Test store selection by mode."""

    @pytest.mark.asyncio
    async def test_mock_mode_shares_one_store(self):
        settings = GatewaySettings(MODE="mock")
        data_settings = DataRepoSettings()

        first = await anext(dependencies.get_content_store(settings, data_settings))
        second = await anext(dependencies.get_content_store(settings, data_settings))

        assert isinstance(first, MockContentStore)
        assert first is second

    @pytest.mark.asyncio
    async def test_prod_mode_builds_github_store(self):
        settings = GatewaySettings(MODE="prod")
        data_settings = DataRepoSettings(
            GH_TOKEN_DATA=SecretStr("t"), DATA_OWNER="o", DATA_REPO="r"
        )

        provider = dependencies.get_content_store(settings, data_settings)
        store = await anext(provider)

        assert isinstance(store, GitHubContentStore)
        assert store.owner == "o"
        await provider.aclose()

    @pytest.mark.asyncio
    async def test_prod_mode_without_token_fails(self):
        provider = dependencies.get_content_store(
            GatewaySettings(MODE="prod"), DataRepoSettings()
        )

        with pytest.raises(GitHubConfigurationError):
            await anext(provider)


class TestHttpClientProvider:
    """Test the client used for external xDomea sources."""

    @pytest.mark.asyncio
    async def test_client_uses_configured_timeout_and_is_closed(self):
        data_settings = DataRepoSettings(GITHUB_TIMEOUT_SECONDS=5)

        provider = dependencies.get_http_client(data_settings)
        client = await anext(provider)

        assert client.timeout.read == 5
        assert client.follow_redirects is True
        await provider.aclose()
        assert client.is_closed


class TestServiceProviders:
    """Test pipeline and reader wiring."""

    def test_get_change_pipeline(self, store):
        data_settings = DataRepoSettings(DATA_BASE="main")

        pipeline = dependencies.get_change_pipeline(
            store=store,
            data_settings=data_settings,
            template_loader=dependencies.get_template_loader(
                GatewaySettings(), data_settings
            ),
        )

        assert isinstance(pipeline, ChangePipeline)
        assert pipeline.base_branch == "main"

    def test_get_document_reader(self, store):
        reader = dependencies.get_document_reader(
            store=store, data_settings=DataRepoSettings()
        )
        assert isinstance(reader, DocumentReader)

    @pytest.mark.asyncio
    async def test_mock_template_loader_uses_default_profile(self):
        settings = GatewaySettings(DEFAULT_PROFILE_HREF="https://p.test/default.json")

        loader = dependencies.get_template_loader(settings, DataRepoSettings())
        template = await loader(None)

        assert template[SSP_ROOT_KEY]["import-profile"] == {
            "href": "https://p.test/default.json"
        }


class TestRequireApiKey:
    """Test the write guard."""

    def test_mock_mode_accepts_anything(self):
        assert dependencies.require_api_key(None, GatewaySettings(MODE="mock")) is None

    def test_matching_key_is_accepted(self):
        settings = GatewaySettings(MODE="prod", APP_API_KEY="secret")
        assert dependencies.require_api_key("secret", settings) is None

    @pytest.mark.parametrize("key", [None, "", "wrong"])
    def test_bad_key_is_rejected(self, key):
        settings = GatewaySettings(MODE="prod", APP_API_KEY="secret")

        with pytest.raises(HTTPException) as exc_info:
            dependencies.require_api_key(key, settings)

        assert exc_info.value.status_code == 401
        assert exc_info.value.detail["error"] == "unauthorized"

    def test_unset_key_rejects_writes_in_prod(self):
        with pytest.raises(HTTPException):
            dependencies.require_api_key("anything", GatewaySettings(MODE="prod"))
