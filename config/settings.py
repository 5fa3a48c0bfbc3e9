"""Pydantic Settings — typed configuration with .env auto-loading."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment / .env file."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # ── Service ──────────────────────────────────────────────
    service_port: int = 3000
    cors_origins: list[str] = ["*"]
    debug: bool = False
    log_level: str = "INFO"

    # ── Storage ──────────────────────────────────────────────
    database_path: str = "data/knowledge_system.db"
    upload_dir: str = "uploads"
    max_upload_bytes: int = 100 * 1024 * 1024  # 100 MiB

    # ── Cache ────────────────────────────────────────────────
    cache_ttl: int = 300  # seconds
    cache_cleanup_interval: int = 300  # seconds

    # ── AI providers ─────────────────────────────────────────
    ai_request_timeout: float = 60.0  # seconds, bound on every outbound AI call

    # ── Helpers ───────────────────────────────────────────────

    @property
    def upload_path(self) -> Path:
        return Path(self.upload_dir)


@lru_cache
def get_settings() -> Settings:
    """Singleton accessor for application settings."""
    return Settings()
