"""Generation parameters shared by every AI provider.

LLMConfig is parsed from the flat string map handed to the provider
factory.  Optional values arrive as strings (``"1000"``, ``"0.7"``); a
value that does not parse, or falls outside its range, is dropped in
favour of the default rather than rejected.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 1000
DEFAULT_TEMPERATURE = 0.7


class LLMConfig(BaseModel):
    """Model name and sampling knobs for one provider instance."""

    model: str
    max_tokens: int = Field(default=DEFAULT_MAX_TOKENS, gt=0)
    temperature: float = Field(default=DEFAULT_TEMPERATURE, ge=0.0, le=2.0)

    @classmethod
    def from_provider_config(
        cls, config: Mapping[str, str], default_model: str
    ) -> LLMConfig:
        """Build from ``model`` / ``max_tokens`` / ``temperature`` string keys."""
        model = (config.get("model") or "").strip() or default_model
        return cls(
            model=model,
            max_tokens=_parse_max_tokens(config.get("max_tokens")),
            temperature=_parse_temperature(config.get("temperature")),
        )

    def to_request_kwargs(self) -> dict:
        """Keyword arguments for a chat-completions request body."""
        return {"max_tokens": self.max_tokens, "temperature": self.temperature}


def _parse_max_tokens(raw: str | None) -> int:
    if raw is None:
        return DEFAULT_MAX_TOKENS
    try:
        value = int(str(raw).strip())
    except ValueError:
        logger.debug("Ignoring malformed max_tokens=%r", raw)
        return DEFAULT_MAX_TOKENS
    if value <= 0:
        logger.debug("Ignoring non-positive max_tokens=%r", raw)
        return DEFAULT_MAX_TOKENS
    return value


def _parse_temperature(raw: str | None) -> float:
    if raw is None:
        return DEFAULT_TEMPERATURE
    try:
        value = float(str(raw).strip())
    except ValueError:
        logger.debug("Ignoring malformed temperature=%r", raw)
        return DEFAULT_TEMPERATURE
    if not math.isfinite(value) or not 0.0 <= value <= 2.0:
        logger.debug("Ignoring out-of-range temperature=%r", raw)
        return DEFAULT_TEMPERATURE
    return value
