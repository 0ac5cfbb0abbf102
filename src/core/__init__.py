"""
FireWatch Reports - Core Utilities
Central configuration, logging, constants and the error taxonomy.
"""

from src.core.config import settings, get_settings
from src.core.exceptions import (
    ReportServiceError,
    ValidationError,
    AuthError,
    ForbiddenError,
    NotFoundError,
    InvalidStateError,
    StorageError,
    VerificationUnavailableError,
    VerificationFormatError,
)

__all__ = [
    "settings",
    "get_settings",
    "ReportServiceError",
    "ValidationError",
    "AuthError",
    "ForbiddenError",
    "NotFoundError",
    "InvalidStateError",
    "StorageError",
    "VerificationUnavailableError",
    "VerificationFormatError",
]
