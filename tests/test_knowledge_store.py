"""Tests for the SQLite knowledge store."""

from __future__ import annotations

import sqlite3
from datetime import datetime, timedelta, timezone

import pytest

from errors.exceptions import StoreCorruption
from models.ai_config import AIConfig, AIProviderKind
from models.quiz import AIEvaluation
from parsers import DocumentType
from services.knowledge_store import KnowledgeStore, parse_suggestions


async def _kb_with_question(store: KnowledgeStore):
    kb = await store.create_knowledge_base("Physics", None)
    question = await store.create_question(kb.id, "Why is the sky blue?", "Rayleigh...")
    return kb, question


# ── Knowledge bases ──────────────────────────────────────────


class TestKnowledgeBases:
    @pytest.mark.asyncio
    async def test_create_and_get(self, store):
        kb = await store.create_knowledge_base("Biology", "Cells and genes")
        fetched = await store.get_knowledge_base(kb.id)
        assert fetched == kb
        assert fetched.description == "Cells and genes"

    @pytest.mark.asyncio
    async def test_list_newest_first_with_document_count(self, store):
        older = await store.create_knowledge_base("Older", None)
        newer = await store.create_knowledge_base("Newer", None)
        await store.create_document(newer.id, "a.txt", DocumentType.TXT, "/x/a.txt", 3, "abc")
        await store.create_document(newer.id, "b.txt", DocumentType.TXT, "/x/b.txt", 3, "def")

        listed = await store.list_knowledge_bases()
        assert [kb.id for kb in listed] == [newer.id, older.id]
        assert [kb.document_count for kb in listed] == [2, 0]

    @pytest.mark.asyncio
    async def test_partial_update(self, store):
        kb = await store.create_knowledge_base("Draft", "keep me")
        updated = await store.update_knowledge_base(kb.id, {"name": "Final"})
        assert updated.name == "Final"
        assert updated.description == "keep me"
        assert updated.updated_at >= kb.updated_at

    @pytest.mark.asyncio
    async def test_update_missing(self, store):
        assert await store.update_knowledge_base(999, {"name": "x"}) is None

    @pytest.mark.asyncio
    async def test_delete_cascades(self, store):
        kb, question = await _kb_with_question(store)
        doc = await store.create_document(kb.id, "a.txt", DocumentType.TXT, "/x/a.txt", 1, "a")
        await store.create_answer(question.id, "scattering", None)
        await store.create_review_session(kb.id, 1)

        assert await store.delete_knowledge_base(kb.id) is True
        assert await store.get_document(doc.id) is None
        assert await store.get_question(question.id) is None
        assert await store.get_history(kb.id) == []
        assert await store.count_review_sessions(kb.id) == 0
        assert await store.delete_knowledge_base(kb.id) is False


# ── Documents ────────────────────────────────────────────────


class TestDocuments:
    @pytest.mark.asyncio
    async def test_round_trip(self, store):
        kb = await store.create_knowledge_base("Books", None)
        doc = await store.create_document(
            kb.id, "novel.epub", DocumentType.EPUB, "/u/novel.epub", 2048, "Once upon a time"
        )
        fetched = await store.get_document(doc.id)
        assert fetched.file_type is DocumentType.EPUB
        assert fetched.content_text == "Once upon a time"
        assert await store.list_documents(kb.id) == [fetched]

    @pytest.mark.asyncio
    async def test_delete(self, store):
        kb = await store.create_knowledge_base("Books", None)
        doc = await store.create_document(kb.id, "a.pdf", DocumentType.PDF, "/u/a.pdf", 1, "x")
        assert await store.delete_document(doc.id) is True
        assert await store.delete_document(doc.id) is False

    @pytest.mark.asyncio
    async def test_unknown_stored_format_is_corruption(self, tmp_path):
        path = tmp_path / "legacy.db"
        with sqlite3.connect(path) as conn:
            conn.executescript(
                """
                CREATE TABLE knowledge_bases (id INTEGER PRIMARY KEY, name TEXT NOT NULL,
                    description TEXT, created_at TEXT NOT NULL, updated_at TEXT NOT NULL);
                CREATE TABLE documents (id INTEGER PRIMARY KEY, knowledge_base_id INTEGER,
                    filename TEXT, file_type TEXT, file_path TEXT, file_size INTEGER,
                    content_text TEXT, upload_date TEXT);
                INSERT INTO knowledge_bases VALUES (1, 'old', NULL,
                    '2025-01-01T00:00:00+00:00', '2025-01-01T00:00:00+00:00');
                INSERT INTO documents VALUES (1, 1, 'x.docx', 'docx', '/u/x.docx', 10,
                    'text', '2025-01-01T00:00:00+00:00');
                """
            )
        store = KnowledgeStore(path)
        with pytest.raises(StoreCorruption) as exc_info:
            await store.get_document(1)
        assert exc_info.value.details == {"file_type": "docx"}


# ── Questions / answers / history ────────────────────────────


class TestHistory:
    @pytest.mark.asyncio
    async def test_answer_with_evaluation(self, store):
        kb, question = await _kb_with_question(store)
        evaluation = AIEvaluation(score=88, feedback="Good", suggestions=["Mention 光散射"])
        answer = await store.create_answer(question.id, "Scattering", evaluation)

        history = await store.get_history(kb.id)
        assert len(history) == 1
        assert history[0].question.id == question.id
        assert history[0].answer.id == answer.id
        assert history[0].answer.ai_score == 88
        assert history[0].answer.ai_suggestions == ["Mention 光散射"]

    @pytest.mark.asyncio
    async def test_ungraded_answer(self, store):
        kb, question = await _kb_with_question(store)
        await store.create_answer(question.id, "no idea", None)
        entry = (await store.get_history(kb.id))[0]
        assert entry.answer.ai_score is None
        assert entry.answer.ai_suggestions is None

    @pytest.mark.asyncio
    async def test_newest_first_with_paging(self, store):
        kb, question = await _kb_with_question(store)
        ids = []
        for i in range(5):
            answer = await store.create_answer(
                question.id, f"a{i}", AIEvaluation(score=i * 20, feedback="f")
            )
            ids.append(answer.id)

        page = await store.get_history(kb.id, limit=2, offset=1)
        assert [h.answer.id for h in page] == [ids[3], ids[2]]
        assert len(await store.get_history(kb.id, limit=None)) == 5

    @pytest.mark.asyncio
    async def test_score_and_date_filters(self, store):
        kb, question = await _kb_with_question(store)
        for score in (10, 50, 90):
            await store.create_answer(question.id, "a", AIEvaluation(score=score, feedback="f"))

        mid = await store.get_history(kb.id, min_score=40, max_score=60)
        assert [h.answer.ai_score for h in mid] == [50]

        now = datetime.now(timezone.utc)
        assert len(await store.get_history(kb.id, start_date=now - timedelta(hours=1))) == 3
        assert await store.get_history(kb.id, start_date=now + timedelta(hours=1)) == []
        assert await store.get_history(kb.id, end_date=now - timedelta(hours=1)) == []

    @pytest.mark.asyncio
    async def test_random_questions(self, store):
        kb = await store.create_knowledge_base("Quiz", None)
        assert await store.random_question(kb.id) is None
        for i in range(4):
            await store.create_question(kb.id, f"Q{i}", None)
        picked = await store.random_questions(kb.id, 3)
        assert len(picked) == 3
        assert len({q.id for q in picked}) == 3
        assert len(await store.random_questions(kb.id, 10)) == 4


@pytest.mark.parametrize(
    "raw,expected",
    [
        (None, None),
        ('["a", "b"]', ["a", "b"]),
        ("[]", []),
        ("plain advice", ["plain advice"]),
        ('{"not": "a list"}', ['{"not": "a list"}']),
    ],
)
def test_parse_suggestions(raw, expected):
    assert parse_suggestions(raw) == expected


# ── Review sessions ──────────────────────────────────────────


class TestReviewSessions:
    @pytest.mark.asyncio
    async def test_create_list_and_score(self, store):
        kb = await store.create_knowledge_base("Review", None)
        session = await store.create_review_session(kb.id, 5)
        assert session.average_score is None

        scored = await store.update_review_session_score(session.id, 72.5)
        assert scored.average_score == 72.5
        assert await store.list_review_sessions(kb.id) == [scored]
        assert await store.count_review_sessions(kb.id) == 1

    @pytest.mark.asyncio
    async def test_score_missing_session(self, store):
        assert await store.update_review_session_score(42, 50.0) is None


# ── AI config ────────────────────────────────────────────────


class TestAIConfig:
    @pytest.mark.asyncio
    async def test_empty(self, store):
        assert await store.get_ai_config() is None

    @pytest.mark.asyncio
    async def test_save_replaces_single_row(self, store):
        await store.save_ai_config(AIConfig(provider=AIProviderKind.DEEPSEEK, api_key="sk-1"))
        saved = await store.save_ai_config(
            AIConfig(
                provider=AIProviderKind.LOCAL,
                api_url="http://localhost:8080",
                max_tokens=2000,
                temperature=0.2,
            )
        )
        fetched = await store.get_ai_config()
        assert fetched == saved
        assert fetched.provider is AIProviderKind.LOCAL
        assert fetched.api_key is None
        assert fetched.max_tokens == 2000
