"""Shared FastAPI dependencies.

Routes receive the store, cache, upload directory and outbound HTTP client
through ``Depends`` so tests can swap each one via
``app.dependency_overrides``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import httpx
from fastapi import Depends

from config.settings import get_settings
from services.ai_factory import get_http_client
from services.cache import MemoryCache, get_cache
from services.knowledge_store import KnowledgeStore, get_knowledge_store


def get_store() -> KnowledgeStore:
    return get_knowledge_store()


def get_memory_cache() -> MemoryCache:
    return get_cache()


def get_upload_dir() -> Path:
    path = get_settings().upload_path
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_max_upload_bytes() -> int:
    return get_settings().max_upload_bytes


def get_ai_http() -> httpx.AsyncClient:
    return get_http_client()


StoreDep = Annotated[KnowledgeStore, Depends(get_store)]
CacheDep = Annotated[MemoryCache, Depends(get_memory_cache)]
UploadDirDep = Annotated[Path, Depends(get_upload_dir)]
MaxUploadDep = Annotated[int, Depends(get_max_upload_bytes)]
AIHttpDep = Annotated[httpx.AsyncClient, Depends(get_ai_http)]
