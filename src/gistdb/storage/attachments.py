"""
Attachment manager: caller-supplied files kept in a secondary gist.

A document references its attachment gist through ``extraFile`` ({id, url}).
File contents are stored verbatim (one gist file per attachment) so they stay
readable on gist.github.com; only the document record goes through the codec.
"""

import logging
from typing import Dict, Mapping, Optional

from gistdb.core.contracts import AttachmentRef
from gistdb.core.errors import TransportError, ValidationError
from gistdb.transport.base import BlobTransport

logger = logging.getLogger(__name__)


class AttachmentManager:
    """Create, update, read and delete attachment gists."""

    def __init__(self, transport: BlobTransport, public: bool = False):
        self.transport = transport
        self.public = public

    @staticmethod
    def validate(files: Mapping[str, str]):
        """Raise ValidationError unless files maps non-empty names to text."""
        if not isinstance(files, Mapping):
            raise ValidationError("files must be a mapping of name to text content")
        for name, content in files.items():
            if not isinstance(name, str) or not name:
                raise ValidationError("file names must be non-empty strings")
            if not isinstance(content, str):
                raise ValidationError(f"file {name!r} content must be text")

    def save(
        self,
        files: Mapping[str, str],
        existing: Optional[AttachmentRef] = None,
        description: Optional[str] = None,
    ) -> AttachmentRef:
        """
        Write files, reusing the existing attachment gist when there is one.

        The attachment ends up holding exactly ``files``: names the existing
        gist has but ``files`` lacks are removed. A referenced gist that no
        longer exists is replaced by a new one.

        Args:
            files: File name -> text content
            existing: Current attachment reference of the document
            description: Gist description

        Returns:
            Reference to the attachment gist
        """
        self.validate(files)
        parts: Dict[str, Optional[str]] = dict(files)
        if existing is not None:
            current = self.transport.read_blob(existing.id)
            if current is not None:
                parts.update({name: None for name in current.parts if name not in files})
            try:
                blob = self.transport.update_blob(existing.id, parts, description=description)
                return AttachmentRef(id=blob.id, url=blob.url)
            except TransportError as e:
                if e.status_code != 404:
                    raise
                logger.warning("attachments.missing id=%s recreating", existing.id)

        blob = self.transport.create_blob(dict(files), public=self.public, description=description)
        logger.debug("attachments.created id=%s files=%d", blob.id, len(files))
        return AttachmentRef(id=blob.id, url=blob.url)

    def read(self, ref: AttachmentRef) -> Dict[str, str]:
        """Attachment files; empty when the gist is gone."""
        blob = self.transport.read_blob(ref.id)
        if blob is None:
            logger.warning("attachments.missing id=%s", ref.id)
            return {}
        return dict(blob.parts)

    def delete(self, ref: Optional[AttachmentRef]) -> bool:
        """Delete the attachment gist, if any."""
        if ref is None:
            return True
        return self.transport.delete_blob(ref.id)
