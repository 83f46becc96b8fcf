"""Errors raised by the review core."""
from typing import Any, Dict


class WordReviewError(Exception):
    """Base class for all review core errors."""

    error_type: str = "INTERNAL_ERROR"
    status_code: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        """Structured failure indicator for an outer transport layer."""
        return {
            "success": False,
            "message": self.message,
            "error": {"code": self.status_code, "type": self.error_type},
        }


class NotFoundError(WordReviewError):
    """Referenced word is absent in the caller's scope."""

    error_type = "NOT_FOUND"
    status_code = 404


class ValidationError(WordReviewError):
    """Malformed input."""

    error_type = "INVALID_PARAMETER"
    status_code = 400


class QuotaExceededError(WordReviewError):
    """Daily new word limit reached."""

    error_type = "QUOTA_EXCEEDED"
    status_code = 429


class InsufficientDataError(WordReviewError):
    """Not enough vocabulary to build a quiz."""

    error_type = "INSUFFICIENT_DATA"
    status_code = 409


class StorageError(WordReviewError):
    """Persistence failure; the in-flight mutation was rolled back."""

    error_type = "STORAGE_ERROR"
    status_code = 500
