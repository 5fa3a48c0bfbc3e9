"""AI providers — question generation and answer grading over chat-completions.

Every backend satisfies the :class:`AIProvider` protocol.  Backends do not
share a base class; they share a :class:`ChatCompletionsClient`, which owns
the wire exchange:

- request envelope ``{model, messages, max_tokens, temperature}``
- response envelope ``{choices: [{message: {role, content}}]}``, first choice only
- network failure → :class:`AIConnectionError`
- non-2xx → :class:`AIAPIError`
- undecodable envelope or empty content → :class:`AIInvalidResponseError`
- request timing logs

Backends differ only in transport (auth header, base URL) and prompt
language.  No retries are attempted; the caller decides.
"""

from __future__ import annotations

import logging
import re
import time
from typing import Protocol, runtime_checkable

import httpx
from pydantic import BaseModel, ValidationError

from config.llm_config import LLMConfig
from config.prompts.quiz import (
    CONNECTION_TEST_MESSAGE,
    EVALUATION_SYSTEM_PROMPT,
    EVALUATION_USER_PROMPT,
    FALLBACK_SUGGESTION,
    QUESTION_SYSTEM_PROMPT,
    QUESTION_USER_PROMPT,
)
from errors.exceptions import (
    AIAPIError,
    AIConnectionError,
    AIInvalidResponseError,
)
from models.quiz import AIEvaluation

logger = logging.getLogger(__name__)

HOSTED_BASE_URL = "https://api.deepseek.com/v1"
HOSTED_DEFAULT_MODEL = "deepseek-chat"
SELF_HOSTED_DEFAULT_MODEL = "local-model"

_JSON_FENCE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


# ── Wire envelope ────────────────────────────────────────────


class ChatMessage(BaseModel):
    role: str
    content: str | None = None


class ChatRequest(BaseModel):
    model: str
    messages: list[ChatMessage]
    max_tokens: int
    temperature: float


class ChatChoice(BaseModel):
    message: ChatMessage


class ChatResponse(BaseModel):
    choices: list[ChatChoice]


# ── Provider protocol ────────────────────────────────────────


@runtime_checkable
class AIProvider(Protocol):
    """Capability surface every text-generation backend exposes."""

    async def generate_question(self, context: str) -> str: ...

    async def evaluate_answer(
        self, question: str, answer: str, context: str
    ) -> AIEvaluation: ...

    async def test_connection(self) -> bool: ...


# ── Transport ────────────────────────────────────────────────


class ChatCompletionsClient:
    """Sends chat-completions requests to one endpoint.

    Holds no per-call state, so one instance serves any number of
    concurrent requests.
    """

    def __init__(
        self,
        endpoint: str,
        llm_config: LLMConfig,
        http: httpx.AsyncClient,
        api_key: str | None = None,
    ) -> None:
        self.endpoint = endpoint
        self.llm_config = llm_config
        self._http = http
        self._headers = {"Content-Type": "application/json"}
        if api_key:
            self._headers["Authorization"] = f"Bearer {api_key}"

    async def complete(self, messages: list[ChatMessage]) -> str:
        """POST *messages* and return the first choice's content."""
        body = ChatRequest(
            model=self.llm_config.model,
            messages=messages,
            **self.llm_config.to_request_kwargs(),
        )
        t0 = time.monotonic()
        try:
            response = await self._http.post(
                self.endpoint,
                json=body.model_dump(),
                headers=self._headers,
            )
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            elapsed = (time.monotonic() - t0) * 1000
            logger.warning("POST %s failed after %.0fms: %s", self.endpoint, elapsed, exc)
            raise AIConnectionError(self.endpoint, str(exc) or type(exc).__name__) from exc

        elapsed = (time.monotonic() - t0) * 1000
        logger.info("POST %s → %d (%.0fms)", self.endpoint, response.status_code, elapsed)

        if not response.is_success:
            raise AIAPIError(response.status_code, response.text[:500], url=self.endpoint)

        try:
            envelope = ChatResponse.model_validate(response.json())
        except ValueError as exc:  # JSONDecodeError, UnicodeDecodeError, ValidationError
            raise AIInvalidResponseError(f"Malformed response envelope: {exc}") from exc

        if not envelope.choices or envelope.choices[0].message.content is None:
            raise AIInvalidResponseError("No content in response")
        return envelope.choices[0].message.content


# ── Shared prompt / parsing helpers ──────────────────────────


def question_messages(context: str, language: str) -> list[ChatMessage]:
    return [
        ChatMessage(role="system", content=QUESTION_SYSTEM_PROMPT[language]),
        ChatMessage(role="user", content=QUESTION_USER_PROMPT[language].format(context=context)),
    ]


def evaluation_messages(
    question: str, answer: str, context: str, language: str
) -> list[ChatMessage]:
    return [
        ChatMessage(role="system", content=EVALUATION_SYSTEM_PROMPT[language]),
        ChatMessage(
            role="user",
            content=EVALUATION_USER_PROMPT[language].format(
                context=context, question=question, answer=answer
            ),
        ),
    ]


class _EvaluationPayload(BaseModel):
    score: int
    feedback: str
    suggestions: list[str]


def parse_evaluation(raw: str, language: str) -> AIEvaluation:
    """Read the grader's reply as an evaluation, degrading instead of failing.

    Replies may be wrapped in a ```json fence.  The score is clamped to
    [0, 100].  Anything that is not an object with ``score``, ``feedback``
    and ``suggestions`` yields :meth:`AIEvaluation.degraded`.
    """
    text = raw.strip()
    fenced = _JSON_FENCE.match(text)
    if fenced:
        text = fenced.group(1)
    try:
        payload = _EvaluationPayload.model_validate_json(text)
    except ValidationError as exc:
        logger.warning("Evaluation reply is not structured, degrading: %s", exc.errors()[:1])
        return AIEvaluation.degraded(raw, FALLBACK_SUGGESTION[language])
    return AIEvaluation(
        score=min(max(payload.score, 0), 100),
        feedback=payload.feedback,
        suggestions=payload.suggestions,
    )


async def _probe(client: ChatCompletionsClient) -> bool:
    try:
        await client.complete([ChatMessage(role="user", content=CONNECTION_TEST_MESSAGE)])
    except Exception as exc:
        logger.warning("Connection test against %s failed: %s", client.endpoint, exc)
        return False
    return True


# ── Backends ─────────────────────────────────────────────────


class HostedProvider:
    """Commercial chat-completions API authenticated with a bearer token."""

    def __init__(
        self,
        api_key: str,
        llm_config: LLMConfig,
        http: httpx.AsyncClient,
        language: str = "zh",
        base_url: str = HOSTED_BASE_URL,
    ) -> None:
        self.language = language
        self.client = ChatCompletionsClient(
            endpoint=f"{base_url.rstrip('/')}/chat/completions",
            llm_config=llm_config,
            http=http,
            api_key=api_key,
        )

    async def generate_question(self, context: str) -> str:
        return await self.client.complete(question_messages(context, self.language))

    async def evaluate_answer(self, question: str, answer: str, context: str) -> AIEvaluation:
        raw = await self.client.complete(
            evaluation_messages(question, answer, context, self.language)
        )
        return parse_evaluation(raw, self.language)

    async def test_connection(self) -> bool:
        return await _probe(self.client)


class SelfHostedProvider:
    """OpenAI-compatible server on a trusted network; no credentials sent."""

    def __init__(
        self,
        api_url: str,
        llm_config: LLMConfig,
        http: httpx.AsyncClient,
        language: str = "en",
    ) -> None:
        self.language = language
        self.client = ChatCompletionsClient(
            endpoint=f"{api_url.rstrip('/')}/v1/chat/completions",
            llm_config=llm_config,
            http=http,
        )

    async def generate_question(self, context: str) -> str:
        return await self.client.complete(question_messages(context, self.language))

    async def evaluate_answer(self, question: str, answer: str, context: str) -> AIEvaluation:
        raw = await self.client.complete(
            evaluation_messages(question, answer, context, self.language)
        )
        return parse_evaluation(raw, self.language)

    async def test_connection(self) -> bool:
        return await _probe(self.client)
