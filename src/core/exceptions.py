"""
FireWatch Reports - Error Taxonomy
Every failure the report pipeline surfaces maps to one of these.
"""

from typing import Optional


class ReportServiceError(Exception):
    """Base error; carries the HTTP status it maps to."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ReportServiceError):
    """Bad input the caller can fix."""
    status_code = 400


class AuthError(ReportServiceError):
    """Missing, invalid or expired credential."""
    status_code = 401


class ForbiddenError(ReportServiceError):
    """Authenticated but not allowed to act on the resource."""
    status_code = 403


class NotFoundError(ReportServiceError):
    """Requested report does not exist."""
    status_code = 404


class InvalidStateError(ReportServiceError):
    """Operation not valid for the report's current status."""
    status_code = 400


class StorageError(ReportServiceError):
    """Persistence or object upload failed."""
    status_code = 500


class VerificationUnavailableError(ReportServiceError):
    """Classifier could not be reached or did not answer in time."""
    status_code = 500


class VerificationFormatError(ReportServiceError):
    """Classifier answered with something that is not the expected JSON."""
    status_code = 500

    def __init__(self, message: str, raw_snippet: Optional[str] = None):
        super().__init__(message)
        self.raw_snippet = raw_snippet or ""


def safe_detail(exc: BaseException) -> str:
    """Best-effort message extraction; never raises."""
    try:
        message = getattr(exc, "message", None) or str(exc)
        return message or exc.__class__.__name__
    except Exception:
        return "unknown"
