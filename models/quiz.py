"""Question, answer, evaluation and review records."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

# Score assigned when the grader's reply cannot be read as an evaluation.
DEGRADED_SCORE = 70


class AIEvaluation(BaseModel):
    """Grading result returned by an AI provider.  Never persisted as-is."""

    score: int = Field(ge=0, le=100)
    feedback: str
    suggestions: list[str] = Field(default_factory=list)

    @classmethod
    def degraded(cls, raw_text: str, suggestion: str) -> AIEvaluation:
        """Fallback used when the upstream reply is not a structured evaluation."""
        return cls(score=DEGRADED_SCORE, feedback=raw_text, suggestions=[suggestion])


class Question(BaseModel):
    id: int
    knowledge_base_id: int
    question_text: str
    context_snippet: str | None = None
    generated_at: datetime


class Answer(BaseModel):
    id: int
    question_id: int
    user_answer: str
    ai_score: int | None = None
    ai_feedback: str | None = None
    ai_suggestions: list[str] | None = None
    answered_at: datetime


class HistoryEntry(BaseModel):
    """A question joined with one of its answers."""

    question: Question
    answer: Answer


class AnswerResult(BaseModel):
    answer_id: int
    evaluation: AIEvaluation | None = None


class ReviewSession(BaseModel):
    id: int
    knowledge_base_id: int
    questions_count: int
    average_score: float | None = None
    session_date: datetime


class LearningProgress(BaseModel):
    knowledge_base_id: int
    total_questions_answered: int
    average_score: float | None = None
    recent_performance: float | None = None
    improvement_trend: Literal["improving", "declining", "stable"] | None = None
    total_review_sessions: int = 0
