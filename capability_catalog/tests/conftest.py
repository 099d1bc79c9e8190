"""Shared fixtures: every test gets its own store under tmp_path."""

import pytest

from capability_catalog.config import Settings


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        store_root=str(tmp_path / "store"),
        config_dir=str(tmp_path / "config"),
        license_key="",
        _env_file=None,
    )
