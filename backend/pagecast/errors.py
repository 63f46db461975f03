# backend/pagecast/errors.py
import enum
from typing import Optional


class ErrorKind(str, enum.Enum):
    INVALID_INPUT = "invalid_input"
    EXTRACTION_FAILED = "extraction_failed"
    SYNTHESIS_FAILED = "synthesis_failed"
    STORE_FAILED = "store_failed"
    PERSISTENCE_FAILED = "persistence_failed"
    DELETE_FAILED = "delete_failed"
    CREATION_FAILED = "creation_failed"
    NOT_FOUND = "not_found"
    CANCELLED = "cancelled"


class PagecastError(Exception):
    """Base class for expected, handled pipeline failures"""

    kind: ErrorKind = ErrorKind.PERSISTENCE_FAILED
    retryable: bool = True

    def __init__(self, detail: str, cause: Optional[BaseException] = None):
        super().__init__(detail)
        self.detail = detail
        self.cause = cause

    def __str__(self) -> str:
        if self.cause is not None and str(self.cause):
            return f"{self.detail}: {self.cause}"
        return self.detail


class InvalidInput(PagecastError):
    """Caller error; never retried"""
    kind = ErrorKind.INVALID_INPUT
    retryable = False


class ExtractionFailed(PagecastError):
    kind = ErrorKind.EXTRACTION_FAILED


class SynthesisFailed(PagecastError):
    kind = ErrorKind.SYNTHESIS_FAILED


class StoreFailed(PagecastError):
    kind = ErrorKind.STORE_FAILED


class PersistenceFailed(PagecastError):
    kind = ErrorKind.PERSISTENCE_FAILED


class DeleteFailed(PagecastError):
    kind = ErrorKind.DELETE_FAILED


class NotFound(PagecastError):
    kind = ErrorKind.NOT_FOUND
    retryable = False


class CreationFailed(PagecastError):
    """Document creation failed; `cause` holds the first underlying failure"""
    kind = ErrorKind.CREATION_FAILED

    def __init__(self, detail: str, cause: Optional[PagecastError] = None):
        super().__init__(detail, cause)
        if cause is not None and not getattr(cause, "retryable", True):
            self.retryable = False


__all__ = [
    "ErrorKind",
    "PagecastError",
    "InvalidInput",
    "ExtractionFailed",
    "SynthesisFailed",
    "StoreFailed",
    "PersistenceFailed",
    "DeleteFailed",
    "NotFound",
    "CreationFailed",
]
