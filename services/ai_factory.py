"""AI provider factory — validate a flat config map and build a backend.

Tags:

- ``hosted``       - requires ``api_key``
- ``self-hosted``  - requires ``api_url``

Optional keys for both: ``model``, ``max_tokens``, ``temperature``,
``language`` (``zh`` / ``en``).  Malformed optional values fall back to
their defaults; a missing required key is an :class:`AIConfigError`.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from enum import Enum

import httpx

from config.llm_config import LLMConfig
from config.prompts.quiz import SUPPORTED_LANGUAGES
from config.settings import get_settings
from errors.exceptions import AIConfigError
from models.ai_config import AIProviderKind
from services.ai_provider import (
    HOSTED_DEFAULT_MODEL,
    SELF_HOSTED_DEFAULT_MODEL,
    AIProvider,
    HostedProvider,
    SelfHostedProvider,
)

logger = logging.getLogger(__name__)


class ProviderType(str, Enum):
    HOSTED = "hosted"
    SELF_HOSTED = "self-hosted"


# Stored provider name → backend.  ``openai`` is accepted by the API but has
# no backend, so it is absent here.
PROVIDER_TYPES: dict[AIProviderKind, ProviderType] = {
    AIProviderKind.DEEPSEEK: ProviderType.HOSTED,
    AIProviderKind.LOCAL: ProviderType.SELF_HOSTED,
}


def create_provider(
    tag: str | ProviderType,
    config: Mapping[str, str],
    http: httpx.AsyncClient | None = None,
) -> AIProvider:
    """Build the backend named by *tag* from *config*.

    Args:
        tag: ``"hosted"`` or ``"self-hosted"``.
        config: flat string map (see module docstring).
        http: shared client; defaults to the process-wide one.

    Raises:
        AIConfigError: unknown tag, or a required key is missing/blank.
    """
    try:
        provider_type = ProviderType(tag)
    except ValueError:
        raise AIConfigError(f"Unknown AI provider type: '{tag}'") from None

    if http is None:
        http = get_http_client()

    if provider_type is ProviderType.HOSTED:
        api_key = _require(config, "api_key", "hosted")
        return HostedProvider(
            api_key=api_key,
            llm_config=LLMConfig.from_provider_config(config, HOSTED_DEFAULT_MODEL),
            http=http,
            language=_language(config, default="zh"),
        )

    api_url = _require(config, "api_url", "self-hosted")
    return SelfHostedProvider(
        api_url=api_url,
        llm_config=LLMConfig.from_provider_config(config, SELF_HOSTED_DEFAULT_MODEL),
        http=http,
        language=_language(config, default="en"),
    )


def _require(config: Mapping[str, str], key: str, tag: str) -> str:
    value = (config.get(key) or "").strip()
    if not value:
        raise AIConfigError(
            f"Missing required config key '{key}' for {tag} provider",
            missing_key=key,
        )
    return value


def _language(config: Mapping[str, str], default: str) -> str:
    value = (config.get("language") or "").strip().lower()
    if value in SUPPORTED_LANGUAGES:
        return value
    if value:
        logger.debug("Ignoring unsupported language=%r", value)
    return default


# ---------------------------------------------------------------------------
# Shared HTTP client (lifecycle tied to FastAPI lifespan)
# ---------------------------------------------------------------------------

_http: httpx.AsyncClient | None = None


def get_http_client() -> httpx.AsyncClient:
    """Process-wide ``httpx.AsyncClient`` for outbound AI calls."""
    global _http
    if _http is None or _http.is_closed:
        settings = get_settings()
        _http = httpx.AsyncClient(
            timeout=httpx.Timeout(settings.ai_request_timeout),
            limits=httpx.Limits(
                max_connections=30,
                max_keepalive_connections=15,
                keepalive_expiry=30,
            ),
        )
        logger.info("AI HTTP client started — timeout=%.0fs", settings.ai_request_timeout)
    return _http


async def close_http_client() -> None:
    """Close the shared client's connection pool."""
    global _http
    if _http is not None:
        await _http.aclose()
        _http = None
        logger.info("AI HTTP client closed")
