"""Question generation, answer grading and learning-progress metrics.

Glue between the knowledge store and the AI providers: assembles a
knowledge base's document text into a prompt context, resolves the stored
AI configuration into a provider, and maps provider failures onto
application errors.
"""

from __future__ import annotations

import logging
from statistics import fmean

import httpx

from errors.exceptions import (
    AIConfigError,
    AIServiceError,
    NotFound,
    NotImplementedFeature,
    ServiceUnavailable,
    ValidationFailed,
)
from models.ai_config import AIConfig, AIProviderKind
from models.knowledge import Document, truncate
from models.quiz import AIEvaluation, AnswerResult, LearningProgress, Question
from services.ai_factory import PROVIDER_TYPES, create_provider
from services.ai_provider import AIProvider
from services.knowledge_store import KnowledgeStore

logger = logging.getLogger(__name__)

CONTEXT_SNIPPET_CHARS = 500
RECENT_WINDOW = 10
TREND_MIN_SCORES = 4
TREND_THRESHOLD = 5.0


# ── Context ──────────────────────────────────────────────────


def build_context(documents: list[Document]) -> str:
    """All extracted document text of a knowledge base, blank-line separated."""
    return "\n\n".join(doc.content_text for doc in documents if doc.content_text)


def context_snippet(documents: list[Document]) -> str | None:
    for doc in documents:
        if doc.content_text:
            return truncate(doc.content_text, CONTEXT_SNIPPET_CHARS)
    return None


# ── Provider resolution ──────────────────────────────────────


def provider_from_config(config: AIConfig, http: httpx.AsyncClient | None = None) -> AIProvider:
    """Build a provider from the stored configuration row."""
    if config.provider is AIProviderKind.OPENAI:
        raise NotImplementedFeature("OpenAI provider is not implemented yet")
    try:
        return create_provider(
            PROVIDER_TYPES[config.provider], config.to_provider_config(), http=http
        )
    except AIConfigError as exc:
        raise ValidationFailed(
            "AI service is not fully configured",
            details={"missing_key": exc.missing_key, "reason": exc.message},
        ) from exc


async def resolve_provider(
    store: KnowledgeStore, http: httpx.AsyncClient | None = None
) -> AIProvider:
    config = await store.get_ai_config()
    if config is None:
        raise ValidationFailed("AI service is not configured")
    return provider_from_config(config, http)


# ── Operations ───────────────────────────────────────────────


async def generate_question(
    store: KnowledgeStore, knowledge_base_id: int, http: httpx.AsyncClient | None = None
) -> Question:
    """Ask the configured provider for a question about the knowledge base."""
    if await store.get_knowledge_base(knowledge_base_id) is None:
        raise NotFound("Knowledge base", knowledge_base_id)

    documents = await store.list_documents(knowledge_base_id)
    if not documents:
        raise ValidationFailed("No documents found in knowledge base")
    context = build_context(documents)
    if not context.strip():
        raise ValidationFailed("No content available for question generation")

    provider = await resolve_provider(store, http)
    try:
        question_text = await provider.generate_question(context)
    except AIServiceError as exc:
        logger.warning("Question generation failed for kb=%s: %s", knowledge_base_id, exc)
        raise ServiceUnavailable("AI service error", details=exc.message) from exc

    question = await store.create_question(
        knowledge_base_id, question_text.strip(), context_snippet(documents)
    )
    logger.info("Generated question %s for kb=%s", question.id, knowledge_base_id)
    return question


async def _evaluate(
    store: KnowledgeStore, provider: AIProvider, question: Question, user_answer: str
) -> AIEvaluation:
    documents = await store.list_documents(question.knowledge_base_id)
    try:
        return await provider.evaluate_answer(
            question.question_text, user_answer, build_context(documents)
        )
    except AIServiceError as exc:
        logger.warning("Answer evaluation failed for question=%s: %s", question.id, exc)
        raise ServiceUnavailable("AI service error", details=exc.message) from exc


async def submit_answer(
    store: KnowledgeStore,
    question_id: int,
    user_answer: str,
    http: httpx.AsyncClient | None = None,
) -> AnswerResult:
    """Grade *user_answer* and store it with the flattened evaluation."""
    question = await store.get_question(question_id)
    if question is None:
        raise NotFound("Question", question_id)

    provider = await resolve_provider(store, http)
    evaluation = await _evaluate(store, provider, question, user_answer)
    answer = await store.create_answer(question.id, user_answer, evaluation)
    return AnswerResult(answer_id=answer.id, evaluation=evaluation)


async def submit_review_answer(
    store: KnowledgeStore,
    question_id: int,
    user_answer: str,
    http: httpx.AsyncClient | None = None,
) -> AnswerResult:
    """Store a review answer; grade it only when an AI provider is configured."""
    question = await store.get_question(question_id)
    if question is None:
        raise NotFound("Question", question_id)

    evaluation = None
    config = await store.get_ai_config()
    if config is not None:
        provider = provider_from_config(config, http)
        evaluation = await _evaluate(store, provider, question, user_answer)
    else:
        logger.info("No AI config; storing review answer for question=%s ungraded", question_id)

    answer = await store.create_answer(question.id, user_answer, evaluation)
    return AnswerResult(answer_id=answer.id, evaluation=evaluation)


# ── Progress ─────────────────────────────────────────────────


def improvement_trend(scores_newest_first: list[int]) -> str | None:
    """Compare chronological halves; None until enough scores exist."""
    if len(scores_newest_first) < TREND_MIN_SCORES:
        return None
    chronological = list(reversed(scores_newest_first))
    half = len(chronological) // 2
    first, second = fmean(chronological[:half]), fmean(chronological[half:])
    if second > first + TREND_THRESHOLD:
        return "improving"
    if second < first - TREND_THRESHOLD:
        return "declining"
    return "stable"


def compute_progress(
    knowledge_base_id: int,
    total_answered: int,
    scores_newest_first: list[int],
    total_review_sessions: int,
) -> LearningProgress:
    scores = scores_newest_first
    return LearningProgress(
        knowledge_base_id=knowledge_base_id,
        total_questions_answered=total_answered,
        average_score=fmean(scores) if scores else None,
        recent_performance=fmean(scores[:RECENT_WINDOW]) if scores else None,
        improvement_trend=improvement_trend(scores),
        total_review_sessions=total_review_sessions,
    )


async def learning_progress(store: KnowledgeStore, knowledge_base_id: int) -> LearningProgress:
    if await store.get_knowledge_base(knowledge_base_id) is None:
        raise NotFound("Knowledge base", knowledge_base_id)
    history = await store.get_history(knowledge_base_id, limit=None)
    scores = [h.answer.ai_score for h in history if h.answer.ai_score is not None]
    return compute_progress(
        knowledge_base_id,
        total_answered=len(history),
        scores_newest_first=scores,
        total_review_sessions=await store.count_review_sessions(knowledge_base_id),
    )
