"""
In-process blob transport.

Holds blobs in a dict guarded by a lock. Useful for local experiments and as
the transport behind the test suite; it follows the same contract as the gist
transport, including optional per-part size enforcement.
"""

import threading
import uuid
from typing import Dict, Optional

from gistdb.core.contracts import Blob
from gistdb.core.errors import TransportError
from gistdb.transport.base import BlobTransport


class MemoryTransport(BlobTransport):
    """Dict-backed BlobTransport."""

    def __init__(self, max_part_bytes: Optional[int] = None, base_url: str = "memory://"):
        self.max_part_bytes = max_part_bytes
        self.base_url = base_url
        self._blobs: Dict[str, Blob] = {}
        self._lock = threading.Lock()

    def _check_parts(self, parts: Dict[str, Optional[str]]):
        if self.max_part_bytes is None:
            return
        for name, content in parts.items():
            if content is not None and len(content.encode("utf-8")) > self.max_part_bytes:
                raise TransportError(f"part {name} exceeds {self.max_part_bytes} bytes", 422)

    def create_blob(
        self,
        parts: Dict[str, str],
        public: bool = False,
        description: Optional[str] = None,
    ) -> Blob:
        self._check_parts(parts)
        blob_id = uuid.uuid4().hex
        blob = Blob(
            id=blob_id,
            url=f"{self.base_url}{blob_id}",
            parts=dict(parts),
            description=description,
        )
        with self._lock:
            self._blobs[blob_id] = blob
        return self._copy(blob)

    def read_blob(self, blob_id: str) -> Optional[Blob]:
        with self._lock:
            blob = self._blobs.get(blob_id)
            return self._copy(blob) if blob else None

    def update_blob(
        self,
        blob_id: str,
        parts: Dict[str, Optional[str]],
        description: Optional[str] = None,
    ) -> Blob:
        self._check_parts(parts)
        with self._lock:
            blob = self._blobs.get(blob_id)
            if blob is None:
                raise TransportError(f"blob {blob_id} not found", 404)
            for name, content in parts.items():
                if content is None:
                    blob.parts.pop(name, None)
                else:
                    blob.parts[name] = content
            if description is not None:
                blob.description = description
            return self._copy(blob)

    def delete_blob(self, blob_id: str) -> bool:
        with self._lock:
            self._blobs.pop(blob_id, None)
        return True

    def blob_ids(self):
        """Ids of every stored blob."""
        with self._lock:
            return list(self._blobs)

    @staticmethod
    def _copy(blob: Blob) -> Blob:
        return Blob(id=blob.id, url=blob.url, parts=dict(blob.parts), description=blob.description)
