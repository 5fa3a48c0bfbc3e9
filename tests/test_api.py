"""Tests for the FastAPI endpoints."""

from __future__ import annotations

import json

import pytest


async def _create_kb(client, name="Astronomy") -> dict:
    resp = await client.post("/api/knowledge-bases", json={"name": name})
    assert resp.status_code == 201
    return resp.json()


async def _upload_txt(client, kb_id: int, text: str, filename: str = "notes.txt"):
    return await client.post(
        f"/api/knowledge-bases/{kb_id}/documents",
        files={"file": (filename, text.encode("utf-8"), "text/plain")},
    )


async def _configure_ai(client):
    resp = await client.post(
        "/api/ai-config", json={"provider": "deepseek", "api_key": "sk-test-123456"}
    )
    assert resp.status_code == 200


# ── Health ───────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/api/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert data["supported_formats"] == ["epub", "pdf", "txt"]
    assert "x-request-id" in resp.headers


@pytest.mark.asyncio
async def test_request_id_is_echoed(client):
    resp = await client.get("/api/health", headers={"X-Request-ID": "abc123"})
    assert resp.headers["x-request-id"] == "abc123"


# ── Knowledge bases ──────────────────────────────────────────


class TestKnowledgeBases:
    @pytest.mark.asyncio
    async def test_crud(self, client):
        kb = await _create_kb(client)
        assert kb["name"] == "Astronomy"

        resp = await client.get("/api/knowledge-bases")
        assert [item["id"] for item in resp.json()] == [kb["id"]]
        assert resp.json()[0]["document_count"] == 0

        resp = await client.put(
            f"/api/knowledge-bases/{kb['id']}", json={"description": "Stars and planets"}
        )
        assert resp.status_code == 200
        assert resp.json()["name"] == "Astronomy"
        assert resp.json()["description"] == "Stars and planets"

        resp = await client.delete(f"/api/knowledge-bases/{kb['id']}")
        assert resp.status_code == 204
        assert (await client.get("/api/knowledge-bases")).json() == []

    @pytest.mark.asyncio
    async def test_list_reflects_new_kb_despite_cache(self, client):
        await _create_kb(client, "First")
        assert len((await client.get("/api/knowledge-bases")).json()) == 1
        await _create_kb(client, "Second")
        assert len((await client.get("/api/knowledge-bases")).json()) == 2

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [{}, {"name": ""}, {"name": "   "}, {"name": "x" * 256}])
    async def test_invalid_create(self, client, body):
        resp = await client.post("/api/knowledge-bases", json=body)
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_update_without_fields(self, client):
        kb = await _create_kb(client)
        resp = await client.put(f"/api/knowledge-bases/{kb['id']}", json={})
        assert resp.status_code == 400
        assert resp.json()["code"] == "INVALID_REQUEST"

    @pytest.mark.asyncio
    async def test_missing_kb(self, client):
        resp = await client.put("/api/knowledge-bases/999", json={"name": "x"})
        assert resp.status_code == 404
        assert resp.json() == {"error": "Knowledge base 999 not found", "code": "NOT_FOUND"}
        assert (await client.delete("/api/knowledge-bases/999")).status_code == 404


# ── Documents ────────────────────────────────────────────────


class TestDocuments:
    @pytest.mark.asyncio
    async def test_upload_list_content_delete(self, client, upload_dir):
        kb = await _create_kb(client)
        text = "The Moon orbits the Earth. " * 20

        resp = await _upload_txt(client, kb["id"], text)
        assert resp.status_code == 201
        doc = resp.json()
        assert doc["file_type"] == "txt"
        assert doc["file_size"] == len(text.encode())
        assert doc["content_preview"] == text[:200] + "..."

        stored = list(upload_dir.iterdir())
        assert len(stored) == 1
        assert stored[0].name.endswith("_notes.txt")

        listing = (await client.get(f"/api/knowledge-bases/{kb['id']}/documents")).json()
        assert [d["id"] for d in listing] == [doc["id"]]
        kbs = (await client.get("/api/knowledge-bases")).json()
        assert kbs[0]["document_count"] == 1

        content = (await client.get(f"/api/documents/{doc['id']}/content")).json()
        assert content["content"] == text

        assert (await client.delete(f"/api/documents/{doc['id']}")).status_code == 204
        assert list(upload_dir.iterdir()) == []
        assert (await client.get(f"/api/documents/{doc['id']}/content")).status_code == 404
        assert (await client.get(f"/api/knowledge-bases/{kb['id']}/documents")).json() == []

    @pytest.mark.asyncio
    async def test_unsupported_format(self, client, upload_dir):
        kb = await _create_kb(client)
        resp = await _upload_txt(client, kb["id"], "data", filename="sheet.xlsx")
        assert resp.status_code == 400
        assert resp.json()["details"]["supported_formats"] == ["epub", "pdf", "txt"]
        assert list(upload_dir.iterdir()) == []

    @pytest.mark.asyncio
    async def test_unparseable_file_is_removed(self, client, upload_dir):
        kb = await _create_kb(client)
        resp = await client.post(
            f"/api/knowledge-bases/{kb['id']}/documents",
            files={"file": ("paper.pdf", b"definitely not a pdf", "application/pdf")},
        )
        assert resp.status_code == 400
        assert "PDF" in resp.json()["error"]
        assert list(upload_dir.iterdir()) == []

    @pytest.mark.asyncio
    async def test_oversize_upload(self, client, upload_dir):
        kb = await _create_kb(client)
        resp = await _upload_txt(client, kb["id"], "x" * (64 * 1024 + 1))
        assert resp.status_code == 400
        assert resp.json()["error"] == "File too large"
        assert list(upload_dir.iterdir()) == []

    @pytest.mark.asyncio
    async def test_upload_to_missing_kb(self, client):
        resp = await _upload_txt(client, 12345, "hello")
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_deleting_kb_removes_files(self, client, upload_dir):
        kb = await _create_kb(client)
        await _upload_txt(client, kb["id"], "one")
        await _upload_txt(client, kb["id"], "two", filename="two.txt")
        assert len(list(upload_dir.iterdir())) == 2

        await client.delete(f"/api/knowledge-bases/{kb['id']}")
        assert list(upload_dir.iterdir()) == []

    @pytest.mark.asyncio
    async def test_kb_deleted_during_upload(self, client, store, upload_dir, monkeypatch):
        kb = await _create_kb(client)
        create_document = store.create_document

        async def create_after_kb_removed(*args, **kwargs):
            await store.delete_knowledge_base(kb["id"])
            return await create_document(*args, **kwargs)

        monkeypatch.setattr(store, "create_document", create_after_kb_removed)
        resp = await _upload_txt(client, kb["id"], "late arrival")

        assert resp.status_code == 404
        assert resp.json()["code"] == "NOT_FOUND"
        assert list(upload_dir.iterdir()) == []

    @pytest.mark.asyncio
    async def test_failed_insert_removes_file(self, client, store, upload_dir, monkeypatch):
        kb = await _create_kb(client)

        async def broken_insert(*args, **kwargs):
            raise RuntimeError("disk full")

        monkeypatch.setattr(store, "create_document", broken_insert)
        with pytest.raises(RuntimeError, match="disk full"):
            await _upload_txt(client, kb["id"], "content")
        assert list(upload_dir.iterdir()) == []


# ── Quiz ─────────────────────────────────────────────────────


class TestQuiz:
    @pytest.mark.asyncio
    async def test_generate_and_answer(self, client, chat_server):
        kb = await _create_kb(client)
        await _upload_txt(client, kb["id"], "Jupiter is the largest planet.")
        await _configure_ai(client)

        chat_server.reply = "Why is Jupiter so large?"
        resp = await client.post(f"/api/knowledge-bases/{kb['id']}/generate-question")
        assert resp.status_code == 200
        question = resp.json()
        assert question["question_text"] == "Why is Jupiter so large?"
        assert question["context_snippet"] == "Jupiter is the largest planet."
        assert chat_server.requests[0].headers["Authorization"] == "Bearer sk-test-123456"

        chat_server.reply = json.dumps(
            {"score": 82, "feedback": "Good grasp", "suggestions": ["Cite its mass"]}
        )
        resp = await client.post(
            f"/api/questions/{question['id']}/answer", json={"user_answer": "Gas accretion"}
        )
        assert resp.status_code == 200
        assert resp.json()["evaluation"] == {
            "score": 82,
            "feedback": "Good grasp",
            "suggestions": ["Cite its mass"],
        }

        history = (await client.get(f"/api/knowledge-bases/{kb['id']}/history")).json()
        assert history[0]["answer"]["ai_score"] == 82
        assert history[0]["question"]["id"] == question["id"]

    @pytest.mark.asyncio
    async def test_degraded_evaluation_still_succeeds(self, client, chat_server):
        kb = await _create_kb(client)
        await _upload_txt(client, kb["id"], "Saturn has rings.")
        await _configure_ai(client)
        question = (await client.post(f"/api/knowledge-bases/{kb['id']}/generate-question")).json()

        chat_server.reply = "Nice answer, well done."
        resp = await client.post(
            f"/api/questions/{question['id']}/answer", json={"user_answer": "Ice"}
        )
        assert resp.status_code == 200
        evaluation = resp.json()["evaluation"]
        assert evaluation["score"] == 70
        assert evaluation["feedback"] == "Nice answer, well done."
        assert len(evaluation["suggestions"]) == 1

    @pytest.mark.asyncio
    async def test_generate_without_documents(self, client):
        kb = await _create_kb(client)
        await _configure_ai(client)
        resp = await client.post(f"/api/knowledge-bases/{kb['id']}/generate-question")
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_generate_without_ai_config(self, client, chat_server):
        kb = await _create_kb(client)
        await _upload_txt(client, kb["id"], "content")
        resp = await client.post(f"/api/knowledge-bases/{kb['id']}/generate-question")
        assert resp.status_code == 400
        assert chat_server.requests == []

    @pytest.mark.asyncio
    async def test_upstream_error_is_503(self, client, chat_server):
        kb = await _create_kb(client)
        await _upload_txt(client, kb["id"], "content")
        await _configure_ai(client)
        chat_server.status = 500
        resp = await client.post(f"/api/knowledge-bases/{kb['id']}/generate-question")
        assert resp.status_code == 503
        assert resp.json()["code"] == "AI_PROVIDER_ERROR"

    @pytest.mark.asyncio
    async def test_answer_validation(self, client):
        resp = await client.post("/api/questions/1/answer", json={"user_answer": ""})
        assert resp.status_code == 422
        resp = await client.post("/api/questions/1/answer", json={"user_answer": "x" * 5001})
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_answer_unknown_question(self, client):
        resp = await client.post("/api/questions/999/answer", json={"user_answer": "x"})
        assert resp.status_code == 404


# ── Review ───────────────────────────────────────────────────


async def _kb_with_answers(client, chat_server, scores):
    kb = await _create_kb(client)
    await _upload_txt(client, kb["id"], "Mars is red because of iron oxide.")
    await _configure_ai(client)
    question = (await client.post(f"/api/knowledge-bases/{kb['id']}/generate-question")).json()
    for score in scores:
        chat_server.reply = json.dumps({"score": score, "feedback": "f", "suggestions": []})
        await client.post(f"/api/questions/{question['id']}/answer", json={"user_answer": "rust"})
    return kb, question


class TestReview:
    @pytest.mark.asyncio
    async def test_random_question_empty(self, client):
        kb = await _create_kb(client)
        resp = await client.get(f"/api/knowledge-bases/{kb['id']}/review/random")
        assert resp.status_code == 200
        assert resp.json()["question"] is None
        assert resp.json()["message"]

    @pytest.mark.asyncio
    async def test_random_question_and_batch(self, client, chat_server):
        kb, question = await _kb_with_answers(client, chat_server, [])
        resp = await client.get(f"/api/knowledge-bases/{kb['id']}/review/random")
        assert resp.json()["question"]["id"] == question["id"]

        resp = await client.get(f"/api/knowledge-bases/{kb['id']}/review/questions")
        assert [q["id"] for q in resp.json()] == [question["id"]]
        bad = await client.get(f"/api/knowledge-bases/{kb['id']}/review/questions?count=21")
        assert bad.status_code == 422

    @pytest.mark.asyncio
    async def test_history_filters(self, client, chat_server):
        kb, _ = await _kb_with_answers(client, chat_server, [30, 60, 90])
        base = f"/api/knowledge-bases/{kb['id']}/history"

        scores = [h["answer"]["ai_score"] for h in (await client.get(base)).json()]
        assert scores == [90, 60, 30]
        high = (await client.get(base, params={"min_score": 50})).json()
        assert [h["answer"]["ai_score"] for h in high] == [90, 60]
        page = (await client.get(base, params={"limit": 1, "offset": 1})).json()
        assert [h["answer"]["ai_score"] for h in page] == [60]
        resp = await client.get(base, params={"min_score": 80, "max_score": 20})
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_progress(self, client, chat_server):
        kb, _ = await _kb_with_answers(client, chat_server, [40, 50, 85, 95])
        data = (await client.get(f"/api/knowledge-bases/{kb['id']}/progress")).json()
        assert data["total_questions_answered"] == 4
        assert data["average_score"] == pytest.approx(67.5)
        assert data["improvement_trend"] == "improving"
        assert data["total_review_sessions"] == 0

    @pytest.mark.asyncio
    async def test_review_sessions(self, client, chat_server):
        kb, question = await _kb_with_answers(client, chat_server, [70, 80])

        resp = await client.post(
            "/api/review-sessions", json={"knowledge_base_id": kb["id"], "questions_count": 3}
        )
        assert resp.status_code == 400
        assert resp.json()["details"] == {"available": 2, "requested": 3}

        resp = await client.post(
            "/api/review-sessions", json={"knowledge_base_id": kb["id"], "questions_count": 2}
        )
        assert resp.status_code == 201
        session = resp.json()

        resp = await client.put(
            f"/api/review-sessions/{session['id']}/score", json={"average_score": 75}
        )
        assert resp.json()["average_score"] == 75
        bad = await client.put(
            f"/api/review-sessions/{session['id']}/score", json={"average_score": 101}
        )
        assert bad.status_code == 422

        sessions = (await client.get(f"/api/knowledge-bases/{kb['id']}/review-sessions")).json()
        assert [s["id"] for s in sessions] == [session["id"]]

        chat_server.reply = json.dumps({"score": 88, "feedback": "ok", "suggestions": []})
        resp = await client.post(
            "/api/review/answer",
            json={"question_id": question["id"], "user_answer": "oxidised iron",
                  "session_id": session["id"]},
        )
        assert resp.status_code == 200
        assert resp.json()["evaluation"]["score"] == 88

        progress = (await client.get(f"/api/knowledge-bases/{kb['id']}/progress")).json()
        assert progress["total_review_sessions"] == 1
        assert progress["total_questions_answered"] == 3


# ── AI config ────────────────────────────────────────────────


class TestAIConfig:
    @pytest.mark.asyncio
    async def test_default(self, client):
        data = (await client.get("/api/ai-config")).json()
        assert data["provider"] == "deepseek"
        assert data["api_key_configured"] is False
        assert data["max_tokens"] == 1000
        assert data["temperature"] == 0.7

    @pytest.mark.asyncio
    async def test_save_masks_key(self, client):
        await _configure_ai(client)
        data = (await client.get("/api/ai-config")).json()
        assert data["api_key_configured"] is True
        assert data["api_key_preview"] == "sk-t****"
        assert "sk-test-123456" not in json.dumps(data)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body,status",
        [
            ({"provider": "deepseek"}, 400),
            ({"provider": "local"}, 400),
            ({"provider": "local", "api_url": "ftp://host"}, 422),
            ({"provider": "deepseek", "api_key": "k", "max_tokens": 5000}, 422),
            ({"provider": "deepseek", "api_key": "k", "temperature": 2.5}, 422),
            ({"provider": "claude", "api_key": "k"}, 422),
        ],
    )
    async def test_validation(self, client, body, status):
        resp = await client.post("/api/ai-config", json=body)
        assert resp.status_code == status

    @pytest.mark.asyncio
    async def test_local_provider(self, client, chat_server):
        resp = await client.post(
            "/api/ai-config",
            json={"provider": "local", "api_url": "http://gpu-box:8000/", "model_name": "qwen"},
        )
        assert resp.status_code == 200
        assert resp.json()["api_url"] == "http://gpu-box:8000"

        resp = await client.post("/api/ai-config/test")
        assert resp.json() == {"success": True, "message": "Connection successful"}
        request = chat_server.requests[0]
        assert str(request.url) == "http://gpu-box:8000/v1/chat/completions"
        assert json.loads(request.content)["model"] == "qwen"

    @pytest.mark.asyncio
    async def test_connection_failure_reported(self, client, chat_server):
        await _configure_ai(client)
        chat_server.status = 401
        resp = await client.post("/api/ai-config/test")
        assert resp.status_code == 200
        assert resp.json()["success"] is False

    @pytest.mark.asyncio
    async def test_connection_test_requires_config(self, client):
        resp = await client.post("/api/ai-config/test")
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_openai_not_implemented(self, client):
        await client.post("/api/ai-config", json={"provider": "openai", "api_key": "sk-x"})
        resp = await client.post("/api/ai-config/test")
        assert resp.status_code == 501
