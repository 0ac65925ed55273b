"""
Integration tests: GistDatabase end-to-end over the in-memory transport.
"""

import datetime
import time

import pytest

from gistdb import CompressionType, Config, GistDatabase
from gistdb.core.contracts import TTL, DocRef, DocumentRecord
from gistdb.core.errors import (
    DatabaseNotFoundError,
    DecodeError,
    GistDatabaseError,
    RevisionConflict,
    SizeLimitError,
    ValidationError,
)
from gistdb.core.ids import generate_rev, now_ms
from gistdb.storage import root_index
from gistdb.storage.codec import get_codec
from gistdb.transport.memory import MemoryTransport


def make_db(compression=CompressionType.NONE, encryption_key=None, **overrides):
    transport = MemoryTransport(max_part_bytes=overrides.get("max_chunk_bytes"))
    config = Config(compression=compression, encryption_key=encryption_key, **overrides)
    return GistDatabase(config, transport).init(), transport


class SlowReadTransport(MemoryTransport):
    """MemoryTransport whose reads lag, so parallel workers overlap."""

    def read_blob(self, blob_id):
        time.sleep(0.05)
        return super().read_blob(blob_id)


@pytest.mark.parametrize("compression", list(CompressionType))
def test_sets_and_gets(compression):
    """A stored value reads back with its id and revision."""
    db, _ = make_db(compression)

    res = db.set("test_one", {"name": "test_one"})
    assert res.value == {"name": "test_one"}
    assert res.id
    assert res.rev

    doc = db.get("test_one")
    assert doc.value == {"name": "test_one"}
    assert doc.id == res.id
    assert doc.rev == res.rev
    assert "test_one_0.json" in doc.gist.parts


@pytest.mark.parametrize("compression", list(CompressionType))
def test_deletes(compression):
    """delete removes the document gist and the index entry."""
    db, transport = make_db(compression)
    res = db.set("test_two", {"name": "test_two"})

    assert db.delete("test_two") is True
    assert db.get("test_two") is None
    assert transport.read_blob(res.id) is None
    assert db.keys() == []
    assert db.delete("test_two") is False


def test_init_new_and_existing():
    """init creates a root gist once; a second handle attaches to it."""
    db, transport = make_db()
    assert db.is_new_database is True
    db.set("k", {"a": 1})

    other = GistDatabase(Config(gist_id=db.gist_id), transport).init()
    assert other.is_new_database is False
    assert other.get("k").value == {"a": 1}


def test_init_unknown_root():
    """A configured root that does not exist is an error."""
    with pytest.raises(DatabaseNotFoundError):
        GistDatabase(Config(gist_id="missing"), MemoryTransport()).init()


def test_operations_require_init():
    """Calls before init() fail without touching the transport."""
    db = GistDatabase(Config(), MemoryTransport())
    with pytest.raises(GistDatabaseError):
        db.get("k")


def test_create_database_root():
    """create_database_root returns an empty, usable root gist."""
    transport = MemoryTransport()
    blob = GistDatabase.create_database_root(Config(description="db"), transport)

    db = GistDatabase(Config(gist_id=blob.id), transport).init()
    assert db.keys() == []


def test_same_blob_new_revision():
    """Rewriting a key keeps its gist id and changes the revision."""
    db, _ = make_db()
    first = db.set("k", {"v": 1})
    second = db.set("k", {"v": 2})

    assert second.id == first.id
    assert second.rev != first.rev
    assert db.get("k").value == {"v": 2}


def test_revision_scenario():
    """Matching rev succeeds with a new rev; a stale rev fails."""
    db, _ = make_db()
    db.set("x", {"n": 1})
    r = db.get("x").rev

    r2 = db.set("x", {"n": 2}, rev=r).rev
    assert r2 != r

    with pytest.raises(RevisionConflict) as exc_info:
        db.set("x", {"n": 3}, rev=r)
    assert exc_info.value.expected == r
    assert exc_info.value.actual == r2
    assert db.get("x").value == {"n": 2}


def test_get_with_stale_revision():
    """get with a stale expected revision fails and keeps the document."""
    db, _ = make_db()
    first = db.set("k", {"v": 1})
    db.set("k", {"v": 2})

    with pytest.raises(RevisionConflict):
        db.get("k", expected_rev=first.rev)
    assert db.get("k").value == {"v": 2}


def test_first_write_adopts_rev():
    """A brand-new key takes a caller-supplied rev as its first token."""
    db, _ = make_db()
    assert db.set("new", {"a": 1}, rev="initial").rev == "initial"
    assert db.get("new", expected_rev="initial").rev == "initial"


@pytest.mark.parametrize("value", [[1, 2], "text", 3, None])
def test_rejects_non_mapping_values(value):
    """Only mappings are accepted, before any gist is written."""
    db, transport = make_db()
    before = transport.blob_ids()
    with pytest.raises(ValidationError):
        db.set("k", value)
    assert transport.blob_ids() == before


def test_key_with_a_ttl_gets_deleted():
    """An expired key reads as absent and its gist is removed."""
    db, transport = make_db()
    res = db.set("test_ttl", {}, ttl=100)

    time.sleep(0.3)

    assert db.get("test_ttl") is None
    assert transport.read_blob(res.id) is None
    assert db.keys() == []


def test_ttl_not_yet_expired():
    """A key is readable within its TTL."""
    db, _ = make_db()
    db.set("k", {"a": 1}, ttl=60_000)
    doc = db.get("k")
    assert doc.value == {"a": 1}
    assert doc.ttl.ttl == 60_000


def test_gets_and_deletes_many():
    """Batch calls mirror single calls; deleting missing keys is safe."""
    db, _ = make_db()
    db.set("test_many_one", {})
    db.set("test_many_two", {})

    docs = db.get_many(["test_many_one", "test_many_two"])
    assert len(docs) == 2
    assert all(doc is not None for doc in docs)

    assert db.delete_many(["test_many_one", "test_many_two"]) == [True, True]
    assert db.keys() == []
    assert db.get_many(["test_many_one", "test_many_two"]) == [None, None]
    assert db.delete_many(["nope", "never"]) == [False, False]


def test_has_and_list_keys():
    """has() and keys() reflect the root index with flattened keys."""
    db, _ = make_db()
    db.set(["users", "1"], {"name": "a"})

    assert db.has("users.1")
    assert db.has(["users", "1"])
    assert not db.has("users")
    assert db.keys() == ["users.1"]


@pytest.mark.parametrize("compression", list(CompressionType))
def test_large_record_is_fragmented(compression):
    """A record over one chunk is split across parts and read back whole."""
    db, transport = make_db(compression, encryption_key="secret", max_chunk_bytes=400, max_chunks=10)
    # Random-looking text so binary mode cannot compress it under one chunk
    value = {"payload": "".join(chr(0x4E00 + (i * 7919) % 20000) for i in range(25))}
    files = {"notes.txt": "n" * 100}

    res = db.set("big", value, files=files)

    assert all(len(content.encode("utf-8")) <= 400 for content in res.gist.parts.values())
    assert db.get("big").value == value


def test_oversized_value_is_rejected_up_front():
    """A value beyond chunk capacity fails before any gist is written."""
    db, transport = make_db(max_chunk_bytes=200, max_chunks=2)
    before = transport.blob_ids()

    with pytest.raises(SizeLimitError):
        db.set("k", {"data": "x" * 1000})
    assert transport.blob_ids() == before


def test_shrinking_record_drops_stale_chunks():
    """Chunks left over from a larger previous write are removed."""
    db, transport = make_db(max_chunk_bytes=150, max_chunks=10)
    res = db.set("k", {"a": "x" * 60, "b": "y" * 60})
    assert len(res.gist.parts) > 1

    db.set("k", {"a": 1})
    blob = transport.read_blob(res.id)
    assert list(blob.parts) == ["k_0.json"]
    assert db.get("k").value == {"a": 1}


def test_attachments():
    """Files live in a separate gist, are updated in place and deleted with the key."""
    db, transport = make_db()
    res = db.set("doc", {"a": 1}, files={"readme.md": "# hi"})
    attachment_id = res.attachment.id
    assert attachment_id != res.id

    doc = db.get("doc")
    assert doc.files == {"readme.md": "# hi"}

    db.set("doc", {"a": 2}, files={"readme.md": "# bye"})
    doc = db.get("doc")
    assert doc.attachment.id == attachment_id
    assert doc.files == {"readme.md": "# bye"}

    # Writing without files keeps the attachment
    db.set("doc", {"a": 3})
    assert db.get("doc").files == {"readme.md": "# bye"}

    db.delete("doc")
    assert transport.read_blob(attachment_id) is None


def test_encrypted_payloads_are_opaque():
    """With a key, nothing readable is stored and other keys cannot read it."""
    db, transport = make_db(CompressionType.PRETTY, encryption_key="secret")
    res = db.set("k", {"secret_value": "classified"})

    stored = transport.read_blob(res.id).parts["k_0.json"]
    assert "classified" not in stored
    root = transport.read_blob(db.gist_id).parts["database.json"]
    assert '"k"' not in root

    other = GistDatabase(Config(gist_id=db.gist_id, encryption_key="wrong"), transport)
    with pytest.raises(GistDatabaseError):
        other.init()


def test_destroy():
    """destroy removes every document, attachment and the root gist."""
    db, transport = make_db()
    db.set("a", {"v": 1}, files={"f.txt": "x"})
    db.set("b", {"v": 2})
    db.set("c", {"v": 3})

    db.destroy()
    assert transport.blob_ids() == []


def test_destroy_continues_past_missing_gists():
    """A dangling index entry does not stop destruction."""
    db, transport = make_db()
    res = db.set("a", {"v": 1})
    db.set("b", {"v": 2})
    transport.delete_blob(res.id)

    db.destroy()
    assert transport.blob_ids() == []


def test_size_is_checked_before_any_attachment_is_written():
    """A record that only overflows once its attachment reference is added writes nothing."""
    value = {"p": "x" * 20}
    stand_in = DocumentRecord(value, TTL(now_ms(), None), generate_rev())
    limit = get_codec().size(stand_in.to_dict()) + 20
    db, transport = make_db(max_chunk_bytes=limit, max_chunks=1)
    before = transport.blob_ids()

    with pytest.raises(SizeLimitError):
        db.set("k", value, files={"f.txt": "hi"})
    assert transport.blob_ids() == before

    # A longer adopted revision is sized exactly as well
    with pytest.raises(SizeLimitError):
        db.set("k", value, rev="r" * 64)
    assert transport.blob_ids() == before
    assert db.keys() == []


@pytest.mark.parametrize("value", [{"tags": {"a", "b"}}, {"when": datetime.datetime(2024, 1, 1)}])
def test_rejects_values_json_cannot_represent(value):
    """Non-JSON values are a ValidationError, before any gist is written."""
    db, transport = make_db()
    before = transport.blob_ids()
    with pytest.raises(ValidationError):
        db.set("k", value)
    assert transport.blob_ids() == before


def test_delete_many_removes_every_index_entry():
    """Parallel deletes do not lose each other's index updates."""
    transport = SlowReadTransport()
    db = GistDatabase(Config(), transport).init()
    ids = [db.set(key, {"v": key}).id for key in ("a", "b", "c")]

    assert db.delete_many(["a", "b", "c", "missing"]) == [True, True, True, False]
    assert db.keys() == []
    assert all(transport.read_blob(blob_id) is None for blob_id in ids)


def test_get_many_evicts_every_expired_key():
    """Expired keys read in parallel all leave the index."""
    transport = SlowReadTransport()
    db = GistDatabase(Config(), transport).init()
    for key in ("a", "b", "c"):
        db.set(key, {"v": key}, ttl=100)
    db.set("kept", {"v": 1})

    time.sleep(0.3)

    assert db.get_many(["a", "b", "c"]) == [None, None, None]
    assert db.keys() == ["kept"]


def test_attachment_files_are_replaced():
    """Files missing from a later write are removed from the attachment."""
    db, _ = make_db()
    first = db.set("doc", {"a": 1}, files={"old.txt": "x"})
    second = db.set("doc", {"a": 2}, files={"new.txt": "y"})

    assert second.files == {"new.txt": "y"}
    doc = db.get("doc")
    assert doc.files == {"new.txt": "y"}
    assert doc.attachment.id == first.attachment.id


def test_missing_attachment_gist_is_recreated():
    """A write with files succeeds after the attachment gist disappeared."""
    db, transport = make_db()
    first = db.set("doc", {"a": 1}, files={"f.txt": "x"})
    transport.delete_blob(first.attachment.id)

    second = db.set("doc", {"a": 2}, files={"f.txt": "y"})
    assert second.attachment.id != first.attachment.id
    assert db.get("doc").files == {"f.txt": "y"}


def test_record_ttl_expires_behind_a_fresh_index_entry():
    """The record's own TTL is enforced even when the index entry has none."""
    db, transport = make_db()
    res = db.set("k", {"a": 1}, ttl=100)
    fresh = DocRef(id=res.id, ttl=TTL(now_ms(), None))
    transport.update_blob(db.gist_id, root_index.dump_index({"k": fresh.to_dict()}, db.codec))

    time.sleep(0.3)

    assert db.get("k") is None
    assert transport.read_blob(res.id) is None
    assert db.keys() == []


def test_corrupted_chunk_is_unreadable():
    """get reports a chunk that does not decode instead of returning garbage."""
    db, transport = make_db(CompressionType.BINARY)
    res = db.set("k", {"a": 1})
    transport.update_blob(res.id, {"k_0.json": "not a payload"})

    with pytest.raises(DecodeError):
        db.get("k")


def test_expired_key_adopts_supplied_rev():
    """Writing over an expired key with a rev adopts it and drops the old attachment."""
    db, transport = make_db()
    first = db.set("k", {"v": 1}, ttl=100, files={"a.txt": "x"})

    time.sleep(0.3)

    res = db.set("k", {"v": 2}, rev="mine")
    assert res.rev == "mine"
    assert res.id == first.id
    assert transport.read_blob(first.attachment.id) is None

    doc = db.get("k", expected_rev="mine")
    assert doc.value == {"v": 2}
    assert doc.files == {}
