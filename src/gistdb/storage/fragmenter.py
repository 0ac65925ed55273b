"""
Fragmentation of document records into gist-sized chunks.

Gists cap both the size of a single file and (in practice) the number of files
worth keeping per gist. A record that does not fit in one file is split by its
top-level fields:

- bisect by field count (first ceil(n/2) keys, then the rest), never by size
- recurse on each half until its serialization fits
- a single field that does not fit cannot be split further and is rejected

Chunks are named ``<key>_<index>.json`` with indexes assigned depth-first,
first half before second half. Each chunk holds a disjoint subset of fields, so
reading is a shallow merge.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional

from gistdb.core.errors import DecodeError, SizeLimitError, ValidationError
from gistdb.core.ids import Key, chunk_name, chunk_name_regex
from gistdb.storage.codec import Codec

logger = logging.getLogger(__name__)


def _byte_size(content: str) -> int:
    return len(content.encode("utf-8"))


def _bisect(
    fields: Mapping[str, Any],
    codec: Codec,
    max_chunk_bytes: int,
    leaves: List[str],
):
    """Append the serialized leaves of fields to leaves, depth-first."""
    content = codec.serialize(dict(fields))
    size = _byte_size(content)
    if size <= max_chunk_bytes:
        leaves.append(content)
        return

    keys = list(fields)
    if len(keys) <= 1:
        # Fields are atomic: this branch can no longer shrink
        raise SizeLimitError(SizeLimitError.FIELD_TOO_LARGE, size, max_chunk_bytes)

    half = (len(keys) + 1) // 2
    _bisect({k: fields[k] for k in keys[:half]}, codec, max_chunk_bytes, leaves)
    _bisect({k: fields[k] for k in keys[half:]}, codec, max_chunk_bytes, leaves)


def pack(
    key: Key,
    record: Mapping[str, Any],
    codec: Codec,
    max_chunk_bytes: int,
    max_chunks: int,
) -> Dict[str, str]:
    """
    Split a record into named chunks.

    Args:
        key: Document key (used for chunk names)
        record: Mapping to store; its top-level fields are the split unit
        codec: Codec used for every chunk
        max_chunk_bytes: Maximum UTF-8 size of one chunk
        max_chunks: Maximum number of chunks

    Returns:
        Mapping of chunk name to serialized content

    Raises:
        SizeLimitError: value too large, too many files, or a single field
            larger than max_chunk_bytes
    """
    if not isinstance(record, Mapping):
        raise ValidationError("only mappings can be fragmented")

    total = codec.size(dict(record))
    capacity = max_chunk_bytes * max_chunks
    if total > capacity:
        raise SizeLimitError(SizeLimitError.VALUE_TOO_LARGE, total, capacity)

    leaves: List[str] = []
    _bisect(record, codec, max_chunk_bytes, leaves)

    if len(leaves) > max_chunks:
        raise SizeLimitError(SizeLimitError.TOO_MANY_FILES, len(leaves), max_chunks)

    if len(leaves) > 1:
        logger.debug("fragmenter.split key=%s chunks=%d bytes=%d", key, len(leaves), total)

    return {chunk_name(key, index): content for index, content in enumerate(leaves)}


def chunk_names(parts: Mapping[str, Any], key: Optional[Key] = None) -> List[str]:
    """
    Names in parts that follow the chunk naming convention, in index order.

    Args:
        parts: Gist parts (name -> content)
        key: Only chunks of this key; any key when None
    """
    pattern = chunk_name_regex(key)
    matched = []
    for name in parts:
        match = pattern.match(name)
        if match:
            matched.append((int(match.group(1)), name))
    return [name for _, name in sorted(matched)]


def unpack(
    parts: Mapping[str, str],
    codec: Codec,
    key: Optional[Key] = None,
) -> Optional[Dict[str, Any]]:
    """
    Merge chunks back into one record.

    Args:
        parts: Gist parts (name -> content); unrelated parts are ignored
        codec: Codec the chunks were written with
        key: Only merge chunks of this key; any key when None

    Returns:
        Merged record, or None if no chunk is present

    Raises:
        DecodeError: a chunk cannot be decoded or is not an object
    """
    names = chunk_names(parts, key)
    if not names:
        return None

    record: Dict[str, Any] = {}
    for name in names:
        fields = codec.deserialize(parts[name])
        if not isinstance(fields, dict):
            raise DecodeError(f"value unreadable: chunk {name} is not an object")
        record.update(fields)
    return record
