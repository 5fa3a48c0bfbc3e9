"""Document upload, listing, content and deletion endpoints."""

from __future__ import annotations

import asyncio
import logging
import uuid
from pathlib import Path

from fastapi import APIRouter, File, Response, UploadFile

from api.deps import CacheDep, MaxUploadDep, StoreDep, UploadDirDep
from errors.exceptions import ExtractionError, NotFound, ValidationFailed
from models.knowledge import DocumentContent, DocumentSummary
from parsers import lookup_filename, supported_extensions
from services import cache as cache_ns

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["documents"])

_READ_CHUNK = 1024 * 1024


async def _read_limited(file: UploadFile, max_bytes: int) -> bytes:
    data = bytearray()
    while True:
        chunk = await file.read(_READ_CHUNK)
        if not chunk:
            return bytes(data)
        data.extend(chunk)
        if len(data) > max_bytes:
            raise ValidationFailed(
                "File too large",
                details={"max_bytes": max_bytes},
            )


@router.get(
    "/knowledge-bases/{kb_id}/documents",
    response_model=list[DocumentSummary],
)
async def list_documents(kb_id: int, store: StoreDep, cache: CacheDep):
    cached = await cache.get(cache_ns.DOCUMENTS, kb_id)
    if cached is not None:
        return cached
    if await store.get_knowledge_base(kb_id) is None:
        raise NotFound("Knowledge base", kb_id)
    summaries = [DocumentSummary.from_document(d) for d in await store.list_documents(kb_id)]
    await cache.set(cache_ns.DOCUMENTS, kb_id, summaries)
    return summaries


@router.post(
    "/knowledge-bases/{kb_id}/documents",
    response_model=DocumentSummary,
    status_code=201,
)
async def upload_document(
    kb_id: int,
    store: StoreDep,
    cache: CacheDep,
    upload_dir: UploadDirDep,
    max_bytes: MaxUploadDep,
    file: UploadFile = File(...),
):
    """Store an uploaded PDF/EPUB/TXT file and its extracted text.

    The file is kept under ``{upload_dir}/{uuid}_{filename}``; if extraction
    fails it is removed again and the request is rejected.
    """
    if await store.get_knowledge_base(kb_id) is None:
        raise NotFound("Knowledge base", kb_id)

    filename = Path(file.filename or "").name
    if not filename:
        raise ValidationFailed("Filename is required")
    doc_type = lookup_filename(filename)
    if doc_type is None:
        raise ValidationFailed(
            f"Unsupported file format: {filename}",
            details={"supported_formats": sorted(supported_extensions())},
        )

    data = await _read_limited(file, max_bytes)
    stored_path = upload_dir / f"{uuid.uuid4()}_{filename}"
    await asyncio.to_thread(stored_path.write_bytes, data)

    try:
        content_text = await doc_type.extract(stored_path)
    except ExtractionError as exc:
        stored_path.unlink(missing_ok=True)
        logger.warning("Extraction failed for %s: %s", filename, exc)
        raise ValidationFailed(f"Failed to parse file: {exc}") from exc

    try:
        doc = await store.create_document(
            knowledge_base_id=kb_id,
            filename=filename,
            file_type=doc_type,
            file_path=str(stored_path),
            file_size=len(data),
            content_text=content_text,
        )
    except Exception as exc:
        stored_path.unlink(missing_ok=True)
        # The knowledge base may have been deleted since the check above.
        if await store.get_knowledge_base(kb_id) is None:
            raise NotFound("Knowledge base", kb_id) from exc
        raise
    await cache.invalidate(cache_ns.DOCUMENTS, kb_id)
    await cache.invalidate(cache_ns.KNOWLEDGE_BASES)
    logger.info(
        "Uploaded document %s to kb=%s (%s, %d bytes, %d chars)",
        doc.id, kb_id, doc_type.value, len(data), len(content_text),
    )
    return DocumentSummary.from_document(doc)


@router.delete("/documents/{doc_id}", status_code=204)
async def delete_document(doc_id: int, store: StoreDep, cache: CacheDep):
    doc = await store.get_document(doc_id)
    if doc is None or not await store.delete_document(doc_id):
        raise NotFound("Document", doc_id)
    try:
        Path(doc.file_path).unlink(missing_ok=True)
    except OSError as exc:
        logger.warning("Could not remove %s: %s", doc.file_path, exc)
    await cache.invalidate(cache_ns.DOCUMENT_CONTENT, doc_id)
    await cache.invalidate(cache_ns.DOCUMENTS, doc.knowledge_base_id)
    await cache.invalidate(cache_ns.KNOWLEDGE_BASES)
    return Response(status_code=204)


@router.get("/documents/{doc_id}/content", response_model=DocumentContent)
async def get_document_content(doc_id: int, store: StoreDep, cache: CacheDep):
    cached = await cache.get(cache_ns.DOCUMENT_CONTENT, doc_id)
    if cached is not None:
        return cached
    doc = await store.get_document(doc_id)
    if doc is None:
        raise NotFound("Document", doc_id)
    content = DocumentContent(
        id=doc.id,
        filename=doc.filename,
        file_type=doc.file_type,
        content=doc.content_text or "",
    )
    await cache.set(cache_ns.DOCUMENT_CONTENT, doc_id, content)
    return content
