"""Structured error codes returned in JSON error bodies.

Every non-2xx response produced by an ``AppError`` has the shape::

    {"error": "<human readable>", "code": "<ERROR_CODE>", "details": ...}

``details`` is omitted when there is nothing to add.
"""

from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    """Machine-readable error codes for API responses."""

    INVALID_REQUEST = "INVALID_REQUEST"
    NOT_FOUND = "NOT_FOUND"
    AI_PROVIDER_ERROR = "AI_PROVIDER_ERROR"
    NOT_IMPLEMENTED = "NOT_IMPLEMENTED"
    STORE_CORRUPTION = "STORE_CORRUPTION"
    INTERNAL_ERROR = "INTERNAL_ERROR"


def format_error(code: ErrorCode, detail: str) -> str:
    """Format an error as a single log-friendly line: ``{ERROR_CODE}: {detail}``."""
    return f"{code.value}: {detail}"
