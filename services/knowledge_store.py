"""SQLite-backed storage for knowledge bases, documents, quiz history and AI config.

Every public method is a coroutine; the blocking ``sqlite3`` work runs in a
worker thread with its own short-lived connection, so concurrent requests
never share a connection object.  Foreign keys are enforced and cascade on
delete.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
from contextlib import closing
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from errors.exceptions import StoreCorruption
from models.ai_config import AIConfig
from models.knowledge import Document, KnowledgeBase, KnowledgeBaseSummary
from models.quiz import AIEvaluation, Answer, HistoryEntry, Question, ReviewSession
from parsers.extractors import DocumentType

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS knowledge_bases (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    description TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS documents (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    knowledge_base_id INTEGER NOT NULL,
    filename TEXT NOT NULL,
    file_type TEXT NOT NULL CHECK (file_type IN ('pdf', 'epub', 'txt')),
    file_path TEXT NOT NULL,
    file_size INTEGER NOT NULL,
    content_text TEXT,
    upload_date TEXT NOT NULL,
    FOREIGN KEY (knowledge_base_id) REFERENCES knowledge_bases (id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS questions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    knowledge_base_id INTEGER NOT NULL,
    question_text TEXT NOT NULL,
    context_snippet TEXT,
    generated_at TEXT NOT NULL,
    FOREIGN KEY (knowledge_base_id) REFERENCES knowledge_bases (id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS answers (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    question_id INTEGER NOT NULL,
    user_answer TEXT NOT NULL,
    ai_score INTEGER,
    ai_feedback TEXT,
    ai_suggestions TEXT,
    answered_at TEXT NOT NULL,
    FOREIGN KEY (question_id) REFERENCES questions (id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS review_sessions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    knowledge_base_id INTEGER NOT NULL,
    questions_count INTEGER NOT NULL,
    average_score REAL,
    session_date TEXT NOT NULL,
    FOREIGN KEY (knowledge_base_id) REFERENCES knowledge_bases (id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS ai_config (
    id INTEGER PRIMARY KEY,
    provider TEXT NOT NULL,
    api_key TEXT,
    api_url TEXT,
    model_name TEXT,
    max_tokens INTEGER NOT NULL DEFAULT 1000,
    temperature REAL NOT NULL DEFAULT 0.7,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_documents_kb ON documents (knowledge_base_id);
CREATE INDEX IF NOT EXISTS idx_questions_kb ON questions (knowledge_base_id);
CREATE INDEX IF NOT EXISTS idx_answers_question ON answers (question_id);
CREATE INDEX IF NOT EXISTS idx_review_sessions_kb ON review_sessions (knowledge_base_id);
"""

_HISTORY_COLUMNS = """
    q.id AS q_id, q.knowledge_base_id, q.question_text, q.context_snippet,
    q.generated_at, a.id AS a_id, a.question_id, a.user_answer, a.ai_score,
    a.ai_feedback, a.ai_suggestions, a.answered_at
"""


def utc_now() -> str:
    return to_timestamp(datetime.now(timezone.utc))


def to_timestamp(value: datetime) -> str:
    """Stored timestamp form; naive datetimes are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


class KnowledgeStore:
    """Async facade over one SQLite database file."""

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_database()
        logger.info("Knowledge store ready at %s", self.db_path)

    # -- connection helpers --------------------------------------------------

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def _init_database(self) -> None:
        with closing(self._connect()) as conn:
            conn.executescript(SCHEMA)
            conn.commit()

    def _query(self, sql: str, params: tuple) -> list[dict[str, Any]]:
        with closing(self._connect()) as conn:
            return [dict(row) for row in conn.execute(sql, params).fetchall()]

    def _execute(self, statements: list[tuple[str, tuple]]) -> tuple[int, int]:
        """Run *statements* in one transaction; return (lastrowid, rowcount) of the last."""
        with closing(self._connect()) as conn:
            with conn:
                cursor = None
                for sql, params in statements:
                    cursor = conn.execute(sql, params)
            return cursor.lastrowid, cursor.rowcount

    async def _fetch_all(self, sql: str, params: tuple = ()) -> list[dict[str, Any]]:
        return await asyncio.to_thread(self._query, sql, params)

    async def _fetch_one(self, sql: str, params: tuple = ()) -> dict[str, Any] | None:
        rows = await self._fetch_all(sql, params)
        return rows[0] if rows else None

    async def _write(self, sql: str, params: tuple = ()) -> tuple[int, int]:
        return await asyncio.to_thread(self._execute, [(sql, params)])

    # -- knowledge bases -----------------------------------------------------

    async def create_knowledge_base(self, name: str, description: str | None) -> KnowledgeBase:
        now = utc_now()
        kb_id, _ = await self._write(
            "INSERT INTO knowledge_bases (name, description, created_at, updated_at) "
            "VALUES (?, ?, ?, ?)",
            (name, description, now, now),
        )
        return KnowledgeBase(
            id=kb_id, name=name, description=description, created_at=now, updated_at=now
        )

    async def list_knowledge_bases(self) -> list[KnowledgeBaseSummary]:
        rows = await self._fetch_all(
            "SELECT kb.*, COUNT(d.id) AS document_count "
            "FROM knowledge_bases kb LEFT JOIN documents d ON d.knowledge_base_id = kb.id "
            "GROUP BY kb.id ORDER BY kb.created_at DESC, kb.id DESC"
        )
        return [KnowledgeBaseSummary(**row) for row in rows]

    async def get_knowledge_base(self, kb_id: int) -> KnowledgeBase | None:
        row = await self._fetch_one("SELECT * FROM knowledge_bases WHERE id = ?", (kb_id,))
        return KnowledgeBase(**row) if row else None

    async def update_knowledge_base(
        self, kb_id: int, changes: dict[str, Any]
    ) -> KnowledgeBase | None:
        """Apply *changes* (subset of ``name``/``description``); None if missing."""
        fields = {k: v for k, v in changes.items() if k in ("name", "description")}
        fields["updated_at"] = utc_now()
        assignments = ", ".join(f"{column} = ?" for column in fields)
        _, rowcount = await self._write(
            f"UPDATE knowledge_bases SET {assignments} WHERE id = ?",
            (*fields.values(), kb_id),
        )
        if rowcount == 0:
            return None
        return await self.get_knowledge_base(kb_id)

    async def delete_knowledge_base(self, kb_id: int) -> bool:
        _, rowcount = await self._write("DELETE FROM knowledge_bases WHERE id = ?", (kb_id,))
        return rowcount > 0

    # -- documents -----------------------------------------------------------

    async def create_document(
        self,
        knowledge_base_id: int,
        filename: str,
        file_type: DocumentType,
        file_path: str,
        file_size: int,
        content_text: str | None,
    ) -> Document:
        now = utc_now()
        doc_id, _ = await self._write(
            "INSERT INTO documents (knowledge_base_id, filename, file_type, file_path, "
            "file_size, content_text, upload_date) VALUES (?, ?, ?, ?, ?, ?, ?)",
            (knowledge_base_id, filename, file_type.value, file_path, file_size, content_text, now),
        )
        return Document(
            id=doc_id,
            knowledge_base_id=knowledge_base_id,
            filename=filename,
            file_type=file_type,
            file_path=file_path,
            file_size=file_size,
            content_text=content_text,
            upload_date=now,
        )

    async def list_documents(self, knowledge_base_id: int) -> list[Document]:
        rows = await self._fetch_all(
            "SELECT * FROM documents WHERE knowledge_base_id = ? "
            "ORDER BY upload_date DESC, id DESC",
            (knowledge_base_id,),
        )
        return [_document(row) for row in rows]

    async def get_document(self, doc_id: int) -> Document | None:
        row = await self._fetch_one("SELECT * FROM documents WHERE id = ?", (doc_id,))
        return _document(row) if row else None

    async def delete_document(self, doc_id: int) -> bool:
        _, rowcount = await self._write("DELETE FROM documents WHERE id = ?", (doc_id,))
        return rowcount > 0

    # -- questions -----------------------------------------------------------

    async def create_question(
        self, knowledge_base_id: int, question_text: str, context_snippet: str | None
    ) -> Question:
        now = utc_now()
        q_id, _ = await self._write(
            "INSERT INTO questions (knowledge_base_id, question_text, context_snippet, "
            "generated_at) VALUES (?, ?, ?, ?)",
            (knowledge_base_id, question_text, context_snippet, now),
        )
        return Question(
            id=q_id,
            knowledge_base_id=knowledge_base_id,
            question_text=question_text,
            context_snippet=context_snippet,
            generated_at=now,
        )

    async def get_question(self, question_id: int) -> Question | None:
        row = await self._fetch_one("SELECT * FROM questions WHERE id = ?", (question_id,))
        return Question(**row) if row else None

    async def random_questions(self, knowledge_base_id: int, count: int) -> list[Question]:
        rows = await self._fetch_all(
            "SELECT * FROM questions WHERE knowledge_base_id = ? ORDER BY RANDOM() LIMIT ?",
            (knowledge_base_id, count),
        )
        return [Question(**row) for row in rows]

    async def random_question(self, knowledge_base_id: int) -> Question | None:
        questions = await self.random_questions(knowledge_base_id, 1)
        return questions[0] if questions else None

    # -- answers / history ---------------------------------------------------

    async def create_answer(
        self, question_id: int, user_answer: str, evaluation: AIEvaluation | None
    ) -> Answer:
        now = utc_now()
        score = feedback = suggestions = None
        if evaluation is not None:
            score = evaluation.score
            feedback = evaluation.feedback
            suggestions = json.dumps(evaluation.suggestions, ensure_ascii=False)
        a_id, _ = await self._write(
            "INSERT INTO answers (question_id, user_answer, ai_score, ai_feedback, "
            "ai_suggestions, answered_at) VALUES (?, ?, ?, ?, ?, ?)",
            (question_id, user_answer, score, feedback, suggestions, now),
        )
        return Answer(
            id=a_id,
            question_id=question_id,
            user_answer=user_answer,
            ai_score=score,
            ai_feedback=feedback,
            ai_suggestions=evaluation.suggestions if evaluation else None,
            answered_at=now,
        )

    async def get_history(
        self,
        knowledge_base_id: int,
        limit: int | None = 50,
        offset: int = 0,
        min_score: int | None = None,
        max_score: int | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> list[HistoryEntry]:
        """Answered questions of a knowledge base, newest answer first."""
        clauses = ["q.knowledge_base_id = ?"]
        params: list[Any] = [knowledge_base_id]
        if min_score is not None:
            clauses.append("a.ai_score >= ?")
            params.append(min_score)
        if max_score is not None:
            clauses.append("a.ai_score <= ?")
            params.append(max_score)
        if start_date is not None:
            clauses.append("a.answered_at >= ?")
            params.append(to_timestamp(start_date))
        if end_date is not None:
            clauses.append("a.answered_at <= ?")
            params.append(to_timestamp(end_date))

        sql = (
            f"SELECT {_HISTORY_COLUMNS} FROM answers a "
            "JOIN questions q ON q.id = a.question_id "
            f"WHERE {' AND '.join(clauses)} "
            "ORDER BY a.answered_at DESC, a.id DESC"
        )
        if limit is not None:
            sql += " LIMIT ? OFFSET ?"
            params.extend([limit, offset])
        rows = await self._fetch_all(sql, tuple(params))
        return [_history_entry(row) for row in rows]

    # -- review sessions -----------------------------------------------------

    async def create_review_session(
        self, knowledge_base_id: int, questions_count: int
    ) -> ReviewSession:
        now = utc_now()
        s_id, _ = await self._write(
            "INSERT INTO review_sessions (knowledge_base_id, questions_count, session_date) "
            "VALUES (?, ?, ?)",
            (knowledge_base_id, questions_count, now),
        )
        return ReviewSession(
            id=s_id,
            knowledge_base_id=knowledge_base_id,
            questions_count=questions_count,
            session_date=now,
        )

    async def list_review_sessions(self, knowledge_base_id: int) -> list[ReviewSession]:
        rows = await self._fetch_all(
            "SELECT * FROM review_sessions WHERE knowledge_base_id = ? "
            "ORDER BY session_date DESC, id DESC",
            (knowledge_base_id,),
        )
        return [ReviewSession(**row) for row in rows]

    async def get_review_session(self, session_id: int) -> ReviewSession | None:
        row = await self._fetch_one("SELECT * FROM review_sessions WHERE id = ?", (session_id,))
        return ReviewSession(**row) if row else None

    async def update_review_session_score(
        self, session_id: int, average_score: float
    ) -> ReviewSession | None:
        _, rowcount = await self._write(
            "UPDATE review_sessions SET average_score = ? WHERE id = ?",
            (average_score, session_id),
        )
        if rowcount == 0:
            return None
        return await self.get_review_session(session_id)

    async def count_review_sessions(self, knowledge_base_id: int) -> int:
        row = await self._fetch_one(
            "SELECT COUNT(*) AS n FROM review_sessions WHERE knowledge_base_id = ?",
            (knowledge_base_id,),
        )
        return row["n"]

    # -- AI configuration ----------------------------------------------------

    async def get_ai_config(self) -> AIConfig | None:
        row = await self._fetch_one("SELECT * FROM ai_config ORDER BY id LIMIT 1")
        return AIConfig(**row) if row else None

    async def save_ai_config(self, config: AIConfig) -> AIConfig:
        """Replace the single stored configuration row."""
        now = utc_now()
        await asyncio.to_thread(
            self._execute,
            [
                ("DELETE FROM ai_config", ()),
                (
                    "INSERT INTO ai_config (id, provider, api_key, api_url, model_name, "
                    "max_tokens, temperature, updated_at) VALUES (1, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        config.provider.value,
                        config.api_key,
                        config.api_url,
                        config.model_name,
                        config.max_tokens,
                        config.temperature,
                        now,
                    ),
                ),
            ],
        )
        return config.model_copy(update={"id": 1, "updated_at": datetime.fromisoformat(now)})


# ── Row mapping ──────────────────────────────────────────────


def _document(row: dict[str, Any]) -> Document:
    try:
        DocumentType(row["file_type"])
    except ValueError:
        logger.error("Document %s has unknown file_type %r", row["id"], row["file_type"])
        raise StoreCorruption(
            f"Document {row['id']} has an unrecognised file type",
            details={"file_type": row["file_type"]},
        ) from None
    return Document(**row)


def parse_suggestions(raw: str | None) -> list[str] | None:
    """Stored suggestions are a JSON list; any other text becomes a single item."""
    if raw is None:
        return None
    try:
        value = json.loads(raw)
    except ValueError:
        return [raw]
    if isinstance(value, list):
        return [str(item) for item in value]
    return [raw]


def _history_entry(row: dict[str, Any]) -> HistoryEntry:
    return HistoryEntry(
        question=Question(
            id=row["q_id"],
            knowledge_base_id=row["knowledge_base_id"],
            question_text=row["question_text"],
            context_snippet=row["context_snippet"],
            generated_at=row["generated_at"],
        ),
        answer=Answer(
            id=row["a_id"],
            question_id=row["question_id"],
            user_answer=row["user_answer"],
            ai_score=row["ai_score"],
            ai_feedback=row["ai_feedback"],
            ai_suggestions=parse_suggestions(row["ai_suggestions"]),
            answered_at=row["answered_at"],
        ),
    )


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

_store: KnowledgeStore | None = None


def get_knowledge_store() -> KnowledgeStore:
    """Get the singleton store, opening the configured database on first use."""
    global _store
    if _store is None:
        from config.settings import get_settings

        _store = KnowledgeStore(get_settings().database_path)
    return _store
