"""API request bodies."""

from __future__ import annotations

from typing import Annotated

from pydantic import AfterValidator, BaseModel, Field, field_validator

from models.ai_config import AIProviderKind


def _not_blank(value: str) -> str:
    if not value.strip():
        raise ValueError("must not be blank")
    return value.strip()


NonBlankStr = Annotated[str, AfterValidator(_not_blank)]


class CreateKnowledgeBaseRequest(BaseModel):
    """POST /api/knowledge-bases"""

    name: NonBlankStr = Field(..., min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=1000)


class UpdateKnowledgeBaseRequest(BaseModel):
    """PUT /api/knowledge-bases/{id} — omitted fields are left unchanged."""

    name: NonBlankStr | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=1000)


class SubmitAnswerRequest(BaseModel):
    """POST /api/questions/{id}/answer"""

    user_answer: NonBlankStr = Field(..., min_length=1, max_length=5000)


class ReviewAnswerRequest(SubmitAnswerRequest):
    """POST /api/review/answer"""

    question_id: int
    session_id: int | None = None


class CreateReviewSessionRequest(BaseModel):
    """POST /api/review-sessions"""

    knowledge_base_id: int
    questions_count: int = Field(..., ge=1, le=100)


class UpdateSessionScoreRequest(BaseModel):
    """PUT /api/review-sessions/{id}/score"""

    average_score: float = Field(..., ge=0.0, le=100.0)


class SaveAIConfigRequest(BaseModel):
    """POST /api/ai-config"""

    provider: AIProviderKind
    api_key: str | None = Field(default=None, max_length=500)
    api_url: str | None = Field(default=None, max_length=500)
    model_name: str | None = Field(default=None, max_length=100)
    max_tokens: int = Field(default=1000, ge=1, le=4000)
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)

    @field_validator("api_url")
    @classmethod
    def _http_url(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        value = value.strip()
        if not value.startswith(("http://", "https://")):
            raise ValueError("api_url must start with http:// or https://")
        return value.rstrip("/")
