"""
GistDatabase: a document store on top of a blob transport.

Layout:
- root gist: one part, ``database.json``, holding the root index
  (key -> {id, ttl})
- one gist per key: the document record ({value, ttl, rev, extraFile}) split
  into ``<key>_<n>.json`` chunks
- optional attachment gist per key, referenced by ``extraFile``

TTL expiry is lazy (enforced when a key is read). Revisions give optimistic
concurrency for a single document. Index read/modify/write cycles are
serialized within one handle; across handles the root index is last-write-wins.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from gistdb.core.contracts import (
    AttachmentRef,
    Blob,
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
    ValidationError,
)
from gistdb.core.ids import Key, format_key, generate_rev, now_ms
from gistdb.storage import root_index
from gistdb.storage.attachments import AttachmentManager
from gistdb.storage.codec import get_codec
from gistdb.storage.fragmenter import chunk_names, pack, unpack
from gistdb.transport.base import BlobTransport
from gistdb.transport.gist_api import GistTransport

logger = logging.getLogger(__name__)

# Stands in for a not-yet-created attachment when sizing a record; as long as
# a GitHub gist reference
PLACEHOLDER_ATTACHMENT = AttachmentRef(id="0" * 32, url="https://gist.github.com/" + "0" * 32)


def ttl_is_expired(ttl: Optional[TTL], now: Optional[int] = None) -> bool:
    """True when ttl is set and now >= created_at + ttl."""
    if ttl is None or ttl.ttl is None:
        return False
    now = now_ms() if now is None else now
    return now >= ttl.created_at + ttl.ttl


def _without(index: Mapping[str, Dict[str, Any]], removed: Mapping[str, DocRef]) -> Dict[str, Dict[str, Any]]:
    """Drop each removed key whose entry still points at the removed blob."""
    for key, ref in removed.items():
        entry = root_index.get(index, key)
        if entry is not None and entry.id == ref.id:
            index = root_index.delete(index, key)
    return dict(index)


class GistDatabase:
    """
    Key-value document store backed by gists.

    Construct with a Config, then call init() before any other operation:

        db = GistDatabase(Config(token=...)).init()
        db.set("user.1", {"name": "Ada"}, ttl=60_000)
        doc = db.get("user.1")
    """

    def __init__(self, config: Config, transport: Optional[BlobTransport] = None):
        """
        Initialize the handle (no network calls).

        Args:
            config: Database configuration
            transport: Blob transport; a GistTransport is built from config
                when omitted
        """
        if config.max_chunk_bytes <= 0 or config.max_chunks <= 0:
            raise ValidationError("max_chunk_bytes and max_chunks must be positive")

        self.config = config
        self.codec = get_codec(config.compression, config.encryption_key, config.zstd_level)

        if transport is None:
            if not config.token:
                raise ValidationError("a GitHub token is required")
            transport = GistTransport(config.token, api_url=config.api_url, timeout=config.timeout)
        self.transport = transport
        self.attachments = AttachmentManager(transport, public=config.public)

        self.gist_id: Optional[str] = config.gist_id
        self.is_new_database: Optional[bool] = None
        self._index_lock = threading.Lock()
        self._initialized = False

    # Lifecycle

    @classmethod
    def create_database_root(
        cls, config: Config, transport: Optional[BlobTransport] = None
    ) -> Blob:
        """Create an empty root gist and return it."""
        db = cls(config, transport)
        return db._create_root()

    def init(self) -> "GistDatabase":
        """
        Create the root gist, or check that the configured one exists.

        Returns:
            self, ready for use

        Raises:
            DatabaseNotFoundError: config.gist_id does not exist
        """
        if self.gist_id is None:
            blob = self._create_root()
            self.gist_id = blob.id
            self.is_new_database = True
        else:
            blob = self.transport.read_blob(self.gist_id)
            if blob is None:
                raise DatabaseNotFoundError(f"gist {self.gist_id} not found")
            root_index.load_index(blob.parts, self.codec)
            self.is_new_database = False

        self._initialized = True
        logger.info("db.init gist_id=%s new=%s", self.gist_id, self.is_new_database)
        return self

    def close(self):
        self.transport.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def _create_root(self) -> Blob:
        return self.transport.create_blob(
            root_index.dump_index({}, self.codec),
            public=self.config.public,
            description=self.config.description,
        )

    def _require_init(self):
        if not self._initialized:
            raise GistDatabaseError("database not initialized; call init() first")

    # Root index

    def _load_index(self, strict: bool = False) -> Dict[str, Dict[str, Any]]:
        """
        Fetch and decode the root index.

        Args:
            strict: Raise when the root gist cannot be read instead of
                treating it as empty (required before writing it back)
        """
        self._require_init()
        blob = self.transport.read_blob(self.gist_id)
        if blob is None:
            if strict:
                raise DatabaseNotFoundError(f"gist {self.gist_id} not readable")
            logger.warning("db.root_unreadable gist_id=%s", self.gist_id)
            return {}
        return root_index.load_index(blob.parts, self.codec)

    def _save_index(self, index: Mapping[str, Dict[str, Any]]):
        self.transport.update_blob(self.gist_id, root_index.dump_index(index, self.codec))

    def _update_index(self, change: Callable[[Dict[str, Dict[str, Any]]], Dict[str, Dict[str, Any]]]):
        """Re-read the index, apply change and write it back, one caller at a time."""
        with self._index_lock:
            self._save_index(change(self._load_index(strict=True)))

    # Documents

    def _read_record(self, ref: DocRef, key: str) -> Optional[Tuple[Blob, DocumentRecord]]:
        blob = self.transport.read_blob(ref.id)
        if blob is None:
            return None
        data = unpack(blob.parts, self.codec, key)
        if data is None:
            return None
        return blob, DocumentRecord.from_dict(data)

    def _read_record_quietly(self, ref: DocRef, key: str) -> Optional[Tuple[Blob, DocumentRecord]]:
        """_read_record for cleanup paths, where an unreadable record is just gone."""
        try:
            return self._read_record(ref, key)
        except DecodeError as e:
            logger.warning("db.record_unreadable key=%s id=%s err=%s", key, ref.id, e)
            return None

    def _remove_gists(self, key: str, ref: DocRef, record: Optional[DocumentRecord] = None):
        """Delete a key's document gist and its attachment, leaving the index alone."""
        if record is None:
            loaded = self._read_record_quietly(ref, key)
            record = loaded[1] if loaded else None
        if record is not None:
            self.attachments.delete(record.extra_file)
        self.transport.delete_blob(ref.id)

    def _evict(self, key: str, ref: DocRef, record: Optional[DocumentRecord] = None):
        """Delete a key's gists and index entry, then persist the index."""
        self._remove_gists(key, ref, record)
        self._update_index(lambda index: _without(index, {key: ref}))

    def get(self, key: Key, expected_rev: Optional[str] = None) -> Optional[Doc]:
        """
        Read a document.

        Args:
            key: Document key
            expected_rev: Fail unless the stored revision equals this

        Returns:
            Doc, or None when the key is absent or expired

        Raises:
            RevisionConflict: expected_rev does not match
            DecodeError: stored content is unreadable
        """
        key = format_key(key)
        index = self._load_index()
        ref = root_index.get(index, key)
        if ref is None:
            return None

        if ttl_is_expired(ref.ttl):
            logger.info("db.expired key=%s id=%s", key, ref.id)
            self._evict(key, ref)
            return None

        loaded = self._read_record(ref, key)
        if loaded is None:
            return None
        blob, record = loaded

        # The record carries its own TTL in case the index entry is stale
        if ttl_is_expired(record.ttl):
            logger.info("db.expired key=%s id=%s", key, ref.id)
            self._evict(key, ref, record)
            return None

        if expected_rev is not None and expected_rev != record.rev:
            raise RevisionConflict(key, expected_rev, record.rev)

        files = self.attachments.read(record.extra_file) if record.extra_file else {}
        return Doc(
            id=blob.id,
            value=record.value,
            rev=record.rev,
            ttl=record.ttl,
            gist=blob,
            files=files,
            attachment=record.extra_file,
        )

    def get_many(self, keys: Sequence[Key]) -> List[Optional[Doc]]:
        """get() for each key, in parallel; results keep the order of keys."""
        if not keys:
            return []
        with ThreadPoolExecutor(max_workers=self.config.max_workers) as pool:
            return list(pool.map(self.get, keys))

    def has(self, key: Key) -> bool:
        return self.get(key) is not None

    def keys(self) -> List[str]:
        """Every key in the root index (expired entries included until read)."""
        return root_index.keys(self._load_index())

    def set(
        self,
        key: Key,
        value: Mapping[str, Any],
        ttl: Optional[int] = None,
        rev: Optional[str] = None,
        files: Optional[Mapping[str, str]] = None,
        description: Optional[str] = None,
    ) -> Doc:
        """
        Write a document.

        Args:
            key: Document key
            value: Plain mapping to store
            ttl: Time-to-live in milliseconds (None keeps the key forever)
            rev: Expected current revision; adopted as the first revision
                when the key does not exist yet
            files: Attachment files (name -> text) stored in a separate gist
            description: Description for the document gist

        Returns:
            The written Doc, with its new revision

        Raises:
            ValidationError: value is not a JSON-serializable mapping, or ttl
                or files are invalid
            SizeLimitError: the record cannot be fragmented within limits
            RevisionConflict: rev does not match the stored revision
        """
        if not isinstance(value, Mapping):
            raise ValidationError("value must be a plain mapping")
        if ttl is not None and (isinstance(ttl, bool) or not isinstance(ttl, int) or ttl < 0):
            raise ValidationError("ttl must be a non-negative number of milliseconds")
        if files is not None:
            AttachmentManager.validate(files)

        key = format_key(key)
        value = dict(value)
        try:
            self.codec.serialize(value)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"value is not JSON serializable: {e}") from e

        # Size check before any network call; repeated with the exact record
        # once the revision is known
        planned = PLACEHOLDER_ATTACHMENT if files is not None else None
        self._pack(key, DocumentRecord(value, TTL(now_ms(), ttl), generate_rev(), planned))

        index = self._load_index(strict=True)
        ref = root_index.get(index, key)

        existing_blob: Optional[Blob] = None
        current: Optional[DocumentRecord] = None
        expired_attachment: Optional[AttachmentRef] = None
        if ref is not None:
            loaded = self._read_record(ref, key) if rev is not None else self._read_record_quietly(ref, key)
            if loaded is not None:
                existing_blob, current = loaded
            else:
                existing_blob = self.transport.read_blob(ref.id)

            if current is not None and (ttl_is_expired(ref.ttl) or ttl_is_expired(current.ttl)):
                # Expired documents count as absent
                expired_attachment = current.extra_file
                current = None

        if rev is not None and current is not None and rev != current.rev:
            raise RevisionConflict(key, rev, current.rev)

        new_rev = rev if (rev is not None and current is None) else generate_rev()
        new_ttl = TTL(created_at=now_ms(), ttl=ttl)

        attachment: Optional[AttachmentRef] = current.extra_file if current else None
        if files is not None and attachment is None:
            planned = PLACEHOLDER_ATTACHMENT
        else:
            planned = attachment
        record = DocumentRecord(value=value, ttl=new_ttl, rev=new_rev, extra_file=planned)
        chunks = self._pack(key, record)

        if files is not None:
            saved = self.attachments.save(files, existing=attachment, description=description)
            if saved != planned:
                record = replace(record, extra_file=saved)
                try:
                    chunks = self._pack(key, record)
                except SizeLimitError:
                    self.attachments.delete(saved)
                    raise
            attachment = saved

        if existing_blob is not None:
            stale = {name: None for name in chunk_names(existing_blob.parts, key) if name not in chunks}
            blob = self.transport.update_blob(existing_blob.id, {**chunks, **stale}, description=description)
        else:
            blob = self.transport.create_blob(chunks, public=self.config.public, description=description)
            logger.debug("db.created key=%s id=%s", key, blob.id)

        if expired_attachment is not None and expired_attachment != attachment:
            self.attachments.delete(expired_attachment)

        if ref is None or ref.id != blob.id or ref.ttl.ttl != ttl or ttl is not None:
            new_ref = DocRef(id=blob.id, ttl=new_ttl)
            self._update_index(lambda index: root_index.set(index, key, new_ref))

        return Doc(
            id=blob.id,
            value=value,
            rev=new_rev,
            ttl=new_ttl,
            gist=blob,
            files=dict(files) if files is not None else {},
            attachment=attachment,
        )

    def _pack(self, key: str, record: DocumentRecord) -> Dict[str, str]:
        return pack(
            key,
            record.to_dict(),
            self.codec,
            self.config.max_chunk_bytes,
            self.config.max_chunks,
        )

    def delete(self, key: Key) -> bool:
        """
        Delete a document, its attachment and its index entry.

        Returns:
            False when the key did not exist
        """
        key = format_key(key)
        ref = root_index.get(self._load_index(), key)
        if ref is None:
            return False
        self._evict(key, ref)
        logger.debug("db.deleted key=%s id=%s", key, ref.id)
        return True

    def delete_many(self, keys: Sequence[Key]) -> List[bool]:
        """
        delete() for each key: gists are removed in parallel, then the index
        is rewritten once without every removed key.
        """
        if not keys:
            return []
        names = [format_key(key) for key in keys]
        index = self._load_index()
        refs = [root_index.get(index, name) for name in names]

        def _delete_one(item: Tuple[str, Optional[DocRef]]) -> bool:
            key, ref = item
            if ref is None:
                return False
            self._remove_gists(key, ref)
            return True

        with ThreadPoolExecutor(max_workers=self.config.max_workers) as pool:
            results = list(pool.map(_delete_one, zip(names, refs)))

        removed = {name: ref for name, ref in zip(names, refs) if ref is not None}
        if removed:
            self._update_index(lambda current: _without(current, removed))
            logger.debug("db.deleted_many keys=%d", len(removed))
        return results

    def destroy(self):
        """
        Delete every document gist, attachment and finally the root gist.

        Best effort: individual failures are logged and skipped.
        """
        index = self._load_index()

        def _destroy_one(key: str):
            ref = root_index.get(index, key)
            if ref is None:
                return
            try:
                loaded = self._read_record_quietly(ref, key)
                if loaded is not None:
                    self.attachments.delete(loaded[1].extra_file)
                self.transport.delete_blob(ref.id)
            except Exception as e:
                logger.warning("db.destroy_failed key=%s id=%s err=%s", key, ref.id, e)

        with ThreadPoolExecutor(max_workers=self.config.max_workers) as pool:
            list(pool.map(_destroy_one, root_index.keys(index)))

        self.transport.delete_blob(self.gist_id)
        logger.info("db.destroyed gist_id=%s keys=%d", self.gist_id, len(index))
