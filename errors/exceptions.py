"""Domain-specific exceptions for the knowledge review service.

Three families:

- extraction errors, raised by ``parsers`` when a document cannot be read,
- AI service errors, raised by AI providers and the provider factory,
- application errors, raised by services/routes and rendered as JSON
  responses by the handler registered in ``main.py``.
"""

from __future__ import annotations

from typing import Any

from models.errors import ErrorCode


# ── Extraction ───────────────────────────────────────────────


class ExtractionError(Exception):
    """Base class for document text extraction failures."""


class ExtractionIOError(ExtractionError):
    """The document path is missing or unreadable."""

    def __init__(self, path: str, detail: str) -> None:
        self.path = path
        self.detail = detail
        super().__init__(f"Cannot read '{path}': {detail}")


class FormatFailure(ExtractionError):
    """The bytes do not parse as the claimed format."""

    def __init__(self, format: str, detail: str) -> None:
        self.format = format
        self.detail = detail
        super().__init__(f"{format.upper()} parsing error: {detail}")


class UnsupportedFormatError(ExtractionError):
    """No extractor is registered for the extension."""

    def __init__(self, extension: str) -> None:
        self.extension = extension
        super().__init__(f"Unsupported file format: '{extension}'")


class ExtractionTaskError(ExtractionError):
    """The worker thread running an extraction died before producing a result.

    Distinct from :class:`FormatFailure`: the document was never judged,
    the offloaded task itself failed.
    """

    def __init__(self, format: str, detail: str) -> None:
        self.format = format
        self.detail = detail
        super().__init__(f"Extraction task failed for {format}: {detail}")


# ── AI services ──────────────────────────────────────────────


class AIServiceError(Exception):
    """Base class for AI provider failures."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class AIConnectionError(AIServiceError):
    """The upstream could not be reached (network failure or timeout)."""

    def __init__(self, url: str, detail: str) -> None:
        self.url = url
        super().__init__(f"Request to {url} failed: {detail}")


class AIAPIError(AIServiceError):
    """The upstream answered with a non-2xx status."""

    def __init__(self, status_code: int, message: str, url: str = "") -> None:
        self.url = url
        super().__init__(f"AI API {status_code}: {message}", status_code=status_code)


class AIInvalidResponseError(AIServiceError):
    """The upstream envelope is not valid JSON or carries no message content."""


class AIConfigError(AIServiceError):
    """Provider configuration is incomplete or names an unknown provider."""

    def __init__(self, message: str, missing_key: str | None = None) -> None:
        self.missing_key = missing_key
        super().__init__(message)


# ── Application (HTTP-mapped) ────────────────────────────────


class AppError(Exception):
    """An error that maps directly onto an HTTP response."""

    status_code = 500
    code = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: str, details: Any = None) -> None:
        self.message = message
        self.details = details
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.message, "code": self.code.value}
        if self.details is not None:
            body["details"] = self.details
        return body


class ValidationFailed(AppError):
    status_code = 400
    code = ErrorCode.INVALID_REQUEST


class NotFound(AppError):
    status_code = 404
    code = ErrorCode.NOT_FOUND

    def __init__(self, entity_type: str, entity_id: int | str) -> None:
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} {entity_id} not found")


class ServiceUnavailable(AppError):
    status_code = 503
    code = ErrorCode.AI_PROVIDER_ERROR


class NotImplementedFeature(AppError):
    status_code = 501
    code = ErrorCode.NOT_IMPLEMENTED


class StoreCorruption(AppError):
    """A persisted row holds a value no model can represent."""

    status_code = 500
    code = ErrorCode.STORE_CORRUPTION
