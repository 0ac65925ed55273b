"""
Root index: the key -> DocRef mapping stored in the root gist.

Every operation is a pure function over a plain mapping and returns a new
mapping; nothing here talks to the network. Keys are flat dotted strings.
"""

from typing import Any, Dict, List, Mapping, Optional

from gistdb.core.contracts import DocRef
from gistdb.core.errors import DecodeError
from gistdb.core.ids import Key, format_key
from gistdb.storage.codec import Codec

ROOT_PART_NAME = "database.json"

RootIndex = Mapping[str, Dict[str, Any]]


def get(index: RootIndex, key: Key) -> Optional[DocRef]:
    """Look up the DocRef for key, or None."""
    entry = index.get(format_key(key))
    if not isinstance(entry, Mapping) or "id" not in entry:
        return None
    return DocRef.from_dict(entry)


def set(index: RootIndex, key: Key, ref: DocRef) -> Dict[str, Dict[str, Any]]:
    """Return a new index with key pointing at ref."""
    new_index = dict(index)
    new_index[format_key(key)] = ref.to_dict()
    return new_index


def delete(index: RootIndex, key: Key) -> Dict[str, Dict[str, Any]]:
    """Return a new index without key (unchanged copy if absent)."""
    new_index = dict(index)
    new_index.pop(format_key(key), None)
    return new_index


def keys(index: RootIndex) -> List[str]:
    """All keys in the index, in insertion order."""
    return list(index)


def load_index(parts: Mapping[str, str], codec: Codec) -> Dict[str, Dict[str, Any]]:
    """
    Decode the root index from the root gist's parts.

    A root gist without the index part is an empty database.

    Raises:
        DecodeError: the index part is unreadable or not an object
    """
    content = parts.get(ROOT_PART_NAME)
    if not content:
        return {}
    index = codec.deserialize(content)
    if not isinstance(index, dict):
        raise DecodeError("value unreadable: root index is not an object")
    return index


def dump_index(index: RootIndex, codec: Codec) -> Dict[str, str]:
    """Encode the index as the root gist's parts."""
    return {ROOT_PART_NAME: codec.serialize(dict(index))}
