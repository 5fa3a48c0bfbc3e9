"""Custom exception hierarchy for the knowledge review service."""

from errors.exceptions import (
    AIAPIError,
    AIConfigError,
    AIConnectionError,
    AIInvalidResponseError,
    AIServiceError,
    AppError,
    ExtractionError,
    ExtractionIOError,
    ExtractionTaskError,
    FormatFailure,
    NotFound,
    NotImplementedFeature,
    ServiceUnavailable,
    StoreCorruption,
    UnsupportedFormatError,
    ValidationFailed,
)

__all__ = [
    "AIAPIError",
    "AIConfigError",
    "AIConnectionError",
    "AIInvalidResponseError",
    "AIServiceError",
    "AppError",
    "ExtractionError",
    "ExtractionIOError",
    "ExtractionTaskError",
    "FormatFailure",
    "NotFound",
    "NotImplementedFeature",
    "ServiceUnavailable",
    "StoreCorruption",
    "UnsupportedFormatError",
    "ValidationFailed",
]
