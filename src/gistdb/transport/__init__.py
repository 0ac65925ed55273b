"""
Blob transports: the GitHub Gists API and an in-process store.
"""

from gistdb.transport.base import BlobTransport
from gistdb.transport.gist_api import GistTransport
from gistdb.transport.memory import MemoryTransport

__all__ = [
    "BlobTransport",
    "GistTransport",
    "MemoryTransport",
]
