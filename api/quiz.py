"""Question generation and answer submission endpoints."""

from __future__ import annotations

from fastapi import APIRouter

from api.deps import AIHttpDep, StoreDep
from models.quiz import AnswerResult, Question
from models.request import SubmitAnswerRequest
from services import quiz_service

router = APIRouter(prefix="/api", tags=["quiz"])


@router.post("/knowledge-bases/{kb_id}/generate-question", response_model=Question)
async def generate_question(kb_id: int, store: StoreDep, http: AIHttpDep):
    """Generate a question from every document in the knowledge base."""
    return await quiz_service.generate_question(store, kb_id, http=http)


@router.post("/questions/{question_id}/answer", response_model=AnswerResult)
async def submit_answer(
    question_id: int, req: SubmitAnswerRequest, store: StoreDep, http: AIHttpDep
):
    return await quiz_service.submit_answer(store, question_id, req.user_answer, http=http)
