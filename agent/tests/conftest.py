"""Shared fixtures for agent tests."""

import pytest

from sitevisit.config import get_settings


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Point the agent at a throwaway data directory."""
    monkeypatch.setenv("SITEVISIT_DATA_DIR", str(tmp_path / "data"))
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
