"""Knowledge base and document records."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

from parsers.extractors import DocumentType

PREVIEW_CHARS = 200


class KnowledgeBase(BaseModel):
    id: int
    name: str
    description: str | None = None
    created_at: datetime
    updated_at: datetime


class KnowledgeBaseSummary(KnowledgeBase):
    """List item: a knowledge base plus how many documents it holds."""

    document_count: int = 0


class Document(BaseModel):
    """An uploaded file and its extracted text.

    ``file_type`` only admits the supported formats; anything else fails
    validation instead of falling back to plain text.  ``content_text`` is
    ``None`` until extraction has succeeded.
    """

    id: int
    knowledge_base_id: int
    filename: str
    file_type: DocumentType
    file_path: str
    file_size: int
    content_text: str | None = None
    upload_date: datetime


class DocumentSummary(BaseModel):
    """List item returned by ``GET /api/knowledge-bases/{id}/documents``."""

    id: int
    knowledge_base_id: int
    filename: str
    file_type: DocumentType
    file_size: int
    upload_date: datetime
    content_preview: str | None = None

    @classmethod
    def from_document(cls, doc: Document) -> DocumentSummary:
        return cls(
            id=doc.id,
            knowledge_base_id=doc.knowledge_base_id,
            filename=doc.filename,
            file_type=doc.file_type,
            file_size=doc.file_size,
            upload_date=doc.upload_date,
            content_preview=(
                truncate(doc.content_text, PREVIEW_CHARS)
                if doc.content_text is not None
                else None
            ),
        )


class DocumentContent(BaseModel):
    id: int
    filename: str
    file_type: DocumentType
    content: str


def truncate(text: str, limit: int) -> str:
    """First *limit* characters of *text*, with ``...`` appended when cut."""
    if len(text) <= limit:
        return text
    return text[:limit] + "..."
