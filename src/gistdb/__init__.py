"""
gistdb - a document key-value store on top of GitHub Gists.
"""

from gistdb.core import CompressionType, Config, Doc
from gistdb.core.errors import (
    DatabaseNotFoundError,
    DecodeError,
    GistDatabaseError,
    RevisionConflict,
    SizeLimitError,
    TransportError,
    ValidationError,
)
from gistdb.store import GistDatabase

__version__ = "0.1.0"

__all__ = [
    "GistDatabase",
    "Config",
    "CompressionType",
    "Doc",
    "GistDatabaseError",
    "ValidationError",
    "SizeLimitError",
    "RevisionConflict",
    "DecodeError",
    "TransportError",
    "DatabaseNotFoundError",
]
