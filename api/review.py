"""Review endpoints — revisit questions, history, progress and review sessions."""

from __future__ import annotations

import logging
from datetime import datetime

from fastapi import APIRouter, Query
from pydantic import BaseModel

from api.deps import AIHttpDep, StoreDep
from errors.exceptions import NotFound, ValidationFailed
from models.quiz import AnswerResult, HistoryEntry, LearningProgress, Question, ReviewSession
from models.request import (
    CreateReviewSessionRequest,
    ReviewAnswerRequest,
    UpdateSessionScoreRequest,
)
from services import quiz_service
from services.knowledge_store import KnowledgeStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["review"])


class RandomQuestionResponse(BaseModel):
    question: Question | None = None
    message: str | None = None


async def _require_kb(store: KnowledgeStore, kb_id: int) -> None:
    if await store.get_knowledge_base(kb_id) is None:
        raise NotFound("Knowledge base", kb_id)


@router.get("/knowledge-bases/{kb_id}/review/random", response_model=RandomQuestionResponse)
async def random_review_question(kb_id: int, store: StoreDep):
    await _require_kb(store, kb_id)
    question = await store.random_question(kb_id)
    if question is None:
        return RandomQuestionResponse(
            message="No questions available for review. Generate some questions first."
        )
    return RandomQuestionResponse(question=question)


@router.get("/knowledge-bases/{kb_id}/review/questions", response_model=list[Question])
async def review_questions(
    kb_id: int,
    store: StoreDep,
    count: int = Query(default=5, ge=1, le=20),
):
    await _require_kb(store, kb_id)
    return await store.random_questions(kb_id, count)


@router.get("/knowledge-bases/{kb_id}/history", response_model=list[HistoryEntry])
async def answer_history(
    kb_id: int,
    store: StoreDep,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    min_score: int | None = Query(default=None, ge=0, le=100),
    max_score: int | None = Query(default=None, ge=0, le=100),
    start_date: datetime | None = None,
    end_date: datetime | None = None,
):
    """Answered questions, newest first, optionally filtered by score and date."""
    if min_score is not None and max_score is not None and min_score > max_score:
        raise ValidationFailed("min_score must not exceed max_score")
    await _require_kb(store, kb_id)
    return await store.get_history(
        kb_id,
        limit=limit,
        offset=offset,
        min_score=min_score,
        max_score=max_score,
        start_date=start_date,
        end_date=end_date,
    )


@router.get("/knowledge-bases/{kb_id}/progress", response_model=LearningProgress)
async def progress(kb_id: int, store: StoreDep):
    return await quiz_service.learning_progress(store, kb_id)


@router.get("/knowledge-bases/{kb_id}/review-sessions", response_model=list[ReviewSession])
async def list_review_sessions(kb_id: int, store: StoreDep):
    await _require_kb(store, kb_id)
    return await store.list_review_sessions(kb_id)


@router.post("/review-sessions", response_model=ReviewSession, status_code=201)
async def create_review_session(req: CreateReviewSessionRequest, store: StoreDep):
    """Open a review session; needs at least ``questions_count`` answered questions."""
    await _require_kb(store, req.knowledge_base_id)
    answered = len(await store.get_history(req.knowledge_base_id, limit=None))
    if answered < req.questions_count:
        raise ValidationFailed(
            "Not enough answered questions for this review session",
            details={"available": answered, "requested": req.questions_count},
        )
    session = await store.create_review_session(req.knowledge_base_id, req.questions_count)
    logger.info("Created review session %s for kb=%s", session.id, req.knowledge_base_id)
    return session


@router.put("/review-sessions/{session_id}/score", response_model=ReviewSession)
async def update_session_score(session_id: int, req: UpdateSessionScoreRequest, store: StoreDep):
    session = await store.update_review_session_score(session_id, req.average_score)
    if session is None:
        raise NotFound("Review session", session_id)
    return session


@router.post("/review/answer", response_model=AnswerResult)
async def submit_review_answer(req: ReviewAnswerRequest, store: StoreDep, http: AIHttpDep):
    if req.session_id is not None and await store.get_review_session(req.session_id) is None:
        raise NotFound("Review session", req.session_id)
    return await quiz_service.submit_review_answer(
        store, req.question_id, req.user_answer, http=http
    )
