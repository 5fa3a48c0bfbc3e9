"""Knowledge base CRUD endpoints."""

from __future__ import annotations

import logging
from pathlib import Path

from fastapi import APIRouter, Response

from api.deps import CacheDep, StoreDep
from errors.exceptions import NotFound, ValidationFailed
from models.knowledge import KnowledgeBase, KnowledgeBaseSummary
from models.request import CreateKnowledgeBaseRequest, UpdateKnowledgeBaseRequest
from services import cache as cache_ns

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/knowledge-bases", tags=["knowledge-bases"])

_ALL = "all"


@router.get("", response_model=list[KnowledgeBaseSummary])
async def list_knowledge_bases(store: StoreDep, cache: CacheDep):
    cached = await cache.get(cache_ns.KNOWLEDGE_BASES, _ALL)
    if cached is not None:
        return cached
    knowledge_bases = await store.list_knowledge_bases()
    await cache.set(cache_ns.KNOWLEDGE_BASES, _ALL, knowledge_bases)
    return knowledge_bases


@router.post("", response_model=KnowledgeBase, status_code=201)
async def create_knowledge_base(req: CreateKnowledgeBaseRequest, store: StoreDep, cache: CacheDep):
    kb = await store.create_knowledge_base(req.name, req.description)
    await cache.invalidate(cache_ns.KNOWLEDGE_BASES)
    logger.info("Created knowledge base %s (%s)", kb.id, kb.name)
    return kb


@router.put("/{kb_id}", response_model=KnowledgeBase)
async def update_knowledge_base(
    kb_id: int, req: UpdateKnowledgeBaseRequest, store: StoreDep, cache: CacheDep
):
    changes = req.model_dump(exclude_unset=True)
    if changes.get("name", "") is None:
        raise ValidationFailed("name cannot be null")
    if not changes:
        raise ValidationFailed("No fields to update")
    kb = await store.update_knowledge_base(kb_id, changes)
    if kb is None:
        raise NotFound("Knowledge base", kb_id)
    await cache.invalidate(cache_ns.KNOWLEDGE_BASES)
    return kb


@router.delete("/{kb_id}", status_code=204)
async def delete_knowledge_base(kb_id: int, store: StoreDep, cache: CacheDep):
    """Delete a knowledge base; its rows cascade, its uploaded files are removed."""
    documents = await store.list_documents(kb_id)
    if not await store.delete_knowledge_base(kb_id):
        raise NotFound("Knowledge base", kb_id)

    for doc in documents:
        try:
            Path(doc.file_path).unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("Could not remove %s: %s", doc.file_path, exc)
        await cache.invalidate(cache_ns.DOCUMENT_CONTENT, doc.id)
    await cache.invalidate(cache_ns.DOCUMENTS, kb_id)
    await cache.invalidate(cache_ns.KNOWLEDGE_BASES)
    logger.info("Deleted knowledge base %s (%d documents)", kb_id, len(documents))
    return Response(status_code=204)
