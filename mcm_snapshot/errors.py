"""
MCM Snapshot - Error Types
Request-level failures. Per-symbol upstream failures are values (FetchError), not exceptions.
"""

from enum import Enum


class ErrorCode(str, Enum):
    """Error classification codes"""
    CONFIGURATION = "configuration"
    VALIDATION = "validation"
    CACHE_UNAVAILABLE = "cache_unavailable"
    COACH_FAILED = "coach_failed"


class SnapshotError(Exception):
    """
    Base request-level error.

    Attributes:
        message: Human-readable error description (returned as {"error": message}).
        code: Structured error code for programmatic handling.
        status_code: HTTP status the route answers with.
    """

    code = ErrorCode.CONFIGURATION
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.message}


class ConfigurationError(SnapshotError):
    """Required binding or credential is missing; fatal before any upstream call."""
    code = ErrorCode.CONFIGURATION
    status_code = 500


class SymbolValidationError(SnapshotError):
    """Empty or invalid symbol list."""
    code = ErrorCode.VALIDATION
    status_code = 400


class CacheUnavailableError(SnapshotError):
    """Durable store unreachable, or a specific read/write failed."""
    code = ErrorCode.CACHE_UNAVAILABLE
    status_code = 500


class CoachError(SnapshotError):
    """Narrative summary could not be produced."""
    code = ErrorCode.COACH_FAILED
    status_code = 502
