from __future__ import annotations


class ArchiveError(Exception):
    """
    Base class for document-archive backend errors.

    `reason` is a short, fixed-vocabulary string that may be returned to callers (for
    per-attachment errors); the exception text can include backend detail and is only
    logged.
    """

    reason: str = "archive error"

    def __init__(self, message: str, *, reason: str | None = None) -> None:
        super().__init__(message)
        if reason is not None:
            self.reason = reason


class ArchiveConfigError(ArchiveError):
    """Endpoint type unknown or credentials missing for its type."""

    reason = "endpoint misconfigured"


class ArchiveAuthError(ArchiveError):
    """Token request failed or returned no usable token."""

    reason = "archive authentication failed"


class ArchiveUploadError(ArchiveError):
    """Upload returned a non-2xx status, or the request did not complete."""

    reason = "upload failed"


class ArchiveRejectedError(ArchiveError):
    """Upload returned 2xx but the backend reported failure in the body."""

    reason = "upload rejected"
