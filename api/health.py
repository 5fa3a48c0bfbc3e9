"""Liveness endpoint."""

from __future__ import annotations

from fastapi import APIRouter

from parsers import supported_extensions

router = APIRouter(prefix="/api", tags=["health"])

SERVICE_VERSION = "0.1.0"


@router.get("/health")
async def health():
    return {
        "status": "healthy",
        "version": SERVICE_VERSION,
        "supported_formats": sorted(supported_extensions()),
    }
