"""
Blob transport interface.

A blob is a remote object with an id and a mapping of named text parts. The
store only ever needs these four calls.
"""

from abc import ABC, abstractmethod
from typing import Dict, Optional

from gistdb.core.contracts import Blob


class BlobTransport(ABC):
    """Create/read/update/delete of remote blobs."""

    @abstractmethod
    def create_blob(
        self,
        parts: Dict[str, str],
        public: bool = False,
        description: Optional[str] = None,
    ) -> Blob:
        """
        Create a blob.

        Raises:
            TransportError: the service rejected the write
        """

    @abstractmethod
    def read_blob(self, blob_id: str) -> Optional[Blob]:
        """Fetch a blob; None when missing or unreadable."""

    @abstractmethod
    def update_blob(
        self,
        blob_id: str,
        parts: Dict[str, Optional[str]],
        description: Optional[str] = None,
    ) -> Blob:
        """
        Merge parts into a blob. A None value removes that part.

        Raises:
            TransportError: the service rejected the write
        """

    @abstractmethod
    def delete_blob(self, blob_id: str) -> bool:
        """Delete a blob. Deleting a missing blob is not an error."""

    def close(self):
        """Release any held resources."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
