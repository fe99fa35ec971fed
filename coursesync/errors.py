"""Error taxonomy for replication operations.

Transport and persistence errors are caught at item or page granularity and
turned into counters + audit entries. Configuration errors abort a whole
operation before any network call.
"""
from __future__ import annotations


class SyncError(Exception):
    """Base class for all replication errors."""


class ConfigurationError(SyncError):
    """Missing or invalid endpoint, secret or setting."""


class AuthenticationError(SyncError):
    """Shared secret absent (401) or mismatched (403)."""

    def __init__(self, message: str, status_code: int = 403):
        super().__init__(message)
        self.status_code = status_code


class TransportError(SyncError):
    """Network failure, timeout or non-200 answer from a remote node."""


class ContentTypeMismatch(SyncError):
    """Item kind does not match the requested or target kind."""


class ValidationError(SyncError):
    """Item payload is missing required fields."""


class PersistenceError(SyncError):
    """Local create/update failed."""


class ContentNotFoundError(SyncError):
    """Raised when a content record could not be located."""
