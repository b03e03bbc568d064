from __future__ import annotations

"""Error code taxonomy for acquisition failures.

Codes appear in structured log lines and run telemetry so a run summary can
explain why a document was skipped or arrived without its PDF.
"""


class ErrorCode:
    SEARCH_FAILED = "search_failed"
    NAVIGATION = "navigation_error"
    EXTRACTION = "extraction_error"
    MISSING_IDENTIFIER = "missing_identifier"
    PDF_TIMEOUT = "pdf_timeout"
    PDF_CAPTURE = "pdf_capture_failed"
    BROWSER_CLOSED = "browser_closed"
    STORAGE = "storage_error"
    CHECKPOINT = "checkpoint_error"
    STATUS = "status_error"
    INTERNAL = "internal_error"


class AcquisitionError(Exception):
    """Base error carrying an :class:`ErrorCode` value."""

    def __init__(self, error_code: str, message: str) -> None:
        super().__init__(message)
        self.error_code = error_code


class StorageError(AcquisitionError):
    def __init__(self, message: str, *, http_status: int | None = None) -> None:
        super().__init__(ErrorCode.STORAGE, message)
        self.http_status = http_status


__all__ = ["ErrorCode", "AcquisitionError", "StorageError"]
