"""Persisted AI provider configuration (one row per installation)."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel

from config.llm_config import DEFAULT_MAX_TOKENS, DEFAULT_TEMPERATURE


class AIProviderKind(str, Enum):
    """Provider names as stored and exposed over the API."""

    DEEPSEEK = "deepseek"
    LOCAL = "local"
    OPENAI = "openai"


class AIConfig(BaseModel):
    id: int | None = None
    provider: AIProviderKind = AIProviderKind.DEEPSEEK
    api_key: str | None = None
    api_url: str | None = None
    model_name: str | None = None
    max_tokens: int = DEFAULT_MAX_TOKENS
    temperature: float = DEFAULT_TEMPERATURE
    updated_at: datetime | None = None

    def to_provider_config(self) -> dict[str, str]:
        """Flatten into the string map consumed by the provider factory."""
        config = {
            "max_tokens": str(self.max_tokens),
            "temperature": str(self.temperature),
        }
        if self.api_key:
            config["api_key"] = self.api_key
        if self.api_url:
            config["api_url"] = self.api_url
        if self.model_name:
            config["model"] = self.model_name
        return config


class AIConfigView(BaseModel):
    """``GET /api/ai-config`` body: the stored row with the key masked."""

    provider: AIProviderKind
    api_key_configured: bool
    api_key_preview: str | None = None
    api_url: str | None = None
    model_name: str | None = None
    max_tokens: int
    temperature: float
    updated_at: datetime | None = None

    @classmethod
    def from_config(cls, config: AIConfig) -> AIConfigView:
        key = config.api_key or ""
        return cls(
            provider=config.provider,
            api_key_configured=bool(key),
            api_key_preview=f"{key[:4]}****" if key else None,
            api_url=config.api_url,
            model_name=config.model_name,
            max_tokens=config.max_tokens,
            temperature=config.temperature,
            updated_at=config.updated_at,
        )


class ConnectionTestResult(BaseModel):
    success: bool
    message: str
