"""
Core contracts, errors and key helpers for gistdb.
"""

from gistdb.core.contracts import (
    AttachmentRef,
    Blob,
    CompressionType,
    Config,
    Doc,
    DocRef,
    DocumentRecord,
    TTL,
)
from gistdb.core.errors import (
    DatabaseNotFoundError,
    DecodeError,
    GistDatabaseError,
    RevisionConflict,
    SizeLimitError,
    TransportError,
    ValidationError,
)
from gistdb.core.ids import chunk_name, format_key, generate_rev

__all__ = [
    "Config",
    "CompressionType",
    "Blob",
    "TTL",
    "DocRef",
    "AttachmentRef",
    "DocumentRecord",
    "Doc",
    "GistDatabaseError",
    "ValidationError",
    "SizeLimitError",
    "RevisionConflict",
    "DecodeError",
    "TransportError",
    "DatabaseNotFoundError",
    "chunk_name",
    "format_key",
    "generate_rev",
]
