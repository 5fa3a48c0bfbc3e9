"""AI provider configuration endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter

from api.deps import AIHttpDep, StoreDep
from errors.exceptions import ValidationFailed
from models.ai_config import AIConfig, AIConfigView, AIProviderKind, ConnectionTestResult
from models.request import SaveAIConfigRequest
from services import quiz_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/ai-config", tags=["ai-config"])

_KEYED_PROVIDERS = (AIProviderKind.DEEPSEEK, AIProviderKind.OPENAI)


@router.get("", response_model=AIConfigView)
async def get_ai_config(store: StoreDep):
    """Stored configuration, or the defaults when nothing is saved yet."""
    config = await store.get_ai_config()
    return AIConfigView.from_config(config or AIConfig())


@router.post("", response_model=AIConfigView)
async def save_ai_config(req: SaveAIConfigRequest, store: StoreDep):
    api_key = (req.api_key or "").strip() or None
    if req.provider in _KEYED_PROVIDERS and not api_key:
        raise ValidationFailed(f"api_key is required for provider '{req.provider.value}'")
    if req.provider is AIProviderKind.LOCAL and not req.api_url:
        raise ValidationFailed("api_url is required for provider 'local'")

    saved = await store.save_ai_config(
        AIConfig(
            provider=req.provider,
            api_key=api_key,
            api_url=req.api_url,
            model_name=(req.model_name or "").strip() or None,
            max_tokens=req.max_tokens,
            temperature=req.temperature,
        )
    )
    logger.info("Saved AI config (provider=%s)", saved.provider.value)
    return AIConfigView.from_config(saved)


@router.post("/test", response_model=ConnectionTestResult)
async def test_ai_config(store: StoreDep, http: AIHttpDep):
    provider = await quiz_service.resolve_provider(store, http)
    if await provider.test_connection():
        return ConnectionTestResult(success=True, message="Connection successful")
    return ConnectionTestResult(success=False, message="Connection failed")
