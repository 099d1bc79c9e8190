"""
Catalog configuration using Pydantic Settings.
All environment-specific values are centralized here.

Settings are passed explicitly into backends and services; `get_settings()`
only supplies the default instance when a caller does not provide one.
"""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Catalog settings loaded from environment variables."""

    # ── App ──────────────────────────────────────────────
    app_name: str = "Capability Catalog"
    debug: bool = False

    # ── Local store ──────────────────────────────────────
    store_root: str = "~/.darwin/store"
    config_dir: str = "~/.darwin/config"
    sqlite_journal_mode: str = "WAL"
    install_source: str = "spatiosdk"

    # ── Remote snapshot ──────────────────────────────────
    remote_endpoint: str = "https://spatiolabs.org/api/capabilities/download-changes"
    remote_repository: str = "capabilities-store"
    license_key: str = ""
    snapshot_max_age_hours: float = 24.0

    # ── Cache ────────────────────────────────────────────
    cache_max_age_seconds: float = 3600.0
    cache_schema_version: str = "1.0.0"

    # ── Logging ──────────────────────────────────────────
    log_level: str = "INFO"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
    }

    @property
    def store_path(self) -> Path:
        return Path(self.store_root).expanduser()

    @property
    def config_path(self) -> Path:
        return Path(self.config_dir).expanduser()


@lru_cache()
def get_settings() -> Settings:
    """Return cached default settings."""
    return Settings()
