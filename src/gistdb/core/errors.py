"""
Exception taxonomy for gistdb.

A missing key is never an error: lookups return ``None``.
"""

from typing import Optional


class GistDatabaseError(Exception):
    """Base class for every error raised by gistdb."""


class ValidationError(GistDatabaseError, ValueError):
    """Value or configuration rejected before any network call."""


class SizeLimitError(GistDatabaseError):
    """Serialized record cannot be stored within the chunking limits."""

    VALUE_TOO_LARGE = "value too large"
    TOO_MANY_FILES = "too many files"
    FIELD_TOO_LARGE = "field too large to fragment"

    def __init__(self, reason: str, size: Optional[int] = None, limit: Optional[int] = None):
        self.reason = reason
        self.size = size
        self.limit = limit
        message = reason
        if size is not None and limit is not None:
            message = f"{reason} ({size} > {limit})"
        super().__init__(message)


class RevisionConflict(GistDatabaseError):
    """Caller-supplied revision does not match the stored revision."""

    def __init__(self, key: str, expected: Optional[str], actual: Optional[str]):
        self.key = key
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"revision conflict for {key!r}: expected {expected!r}, found {actual!r}"
        )


class DecodeError(GistDatabaseError):
    """Stored content cannot be decrypted or parsed."""

    def __init__(self, message: str = "value unreadable"):
        super().__init__(message)


class TransportError(GistDatabaseError):
    """Remote blob service rejected a write."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class DatabaseNotFoundError(GistDatabaseError):
    """Root gist does not exist."""
