"""Unit test specific fixtures."""

import pytest

from src.privacy_gateway import dependencies


@pytest.fixture(autouse=True)
def set_unit_test_env(monkeypatch):
    """Setup environment variables for unit tests.

    Note: Monkeypatch only works for in-process execution.
    Cached settings and the shared mock store are reset around every test.
    """
    monkeypatch.setenv("MODE", "mock")
    monkeypatch.setenv("DATA_ROOT", "data")
    monkeypatch.setenv("DATA_BASE", "main")
    monkeypatch.delenv("APP_API_KEY", raising=False)
    monkeypatch.delenv("GH_TOKEN_DATA", raising=False)

    _clear_caches()
    yield
    _clear_caches()


def _clear_caches() -> None:
    dependencies.get_gateway_settings.cache_clear()
    dependencies.get_data_repo_settings.cache_clear()
    dependencies.get_mock_content_store.cache_clear()
