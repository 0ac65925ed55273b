"""
Key, chunk-name and revision helpers for gistdb.

Key Policy (Flat Dotted Strings):
- a key may be given as a string or a sequence of path segments
- segments are joined with "." so ["a", "b"] and "a.b" address the same entry
- no hierarchical traversal happens on the root index

Chunk names follow ``<key>_<index>.json`` so they can be told apart from
other parts living in the same gist (for example ``database.json``).
"""

import re
import time
import uuid
from typing import Any, Dict, Mapping, Optional, Sequence, Union

Key = Union[str, Sequence[str]]

CHUNK_NAME_PATTERN = r"_(\d+)\.json$"


def format_key(key: Key) -> str:
    """
    Flatten a key into its canonical dotted form.

    Args:
        key: String key or sequence of path segments

    Returns:
        Dot-joined key string
    """
    if isinstance(key, str):
        return key
    return ".".join(str(part) for part in key)


def chunk_name(key: Key, index: int) -> str:
    """Name of the index-th chunk of a key's record."""
    return f"{format_key(key)}_{index}.json"


def chunk_name_regex(key: Optional[Key] = None) -> "re.Pattern[str]":
    """
    Compile the pattern matching chunk names.

    Args:
        key: Restrict to chunks of this key; any key when None

    Returns:
        Compiled regex whose group 1 is the chunk index
    """
    prefix = re.escape(format_key(key)) if key is not None else r".+"
    return re.compile(rf"^{prefix}{CHUNK_NAME_PATTERN}")


def generate_rev() -> str:
    """Generate a fresh opaque revision token."""
    return uuid.uuid4().hex


def now_ms() -> int:
    """Current time in epoch milliseconds."""
    return int(time.time() * 1000)


def get_at_path(obj: Any, path: Sequence[str]) -> Any:
    """
    Read a nested value.

    Returns:
        The value at path, or None when any segment is missing
    """
    current = obj
    for part in path:
        if not isinstance(current, Mapping) or part not in current:
            return None
        current = current[part]
    return current


def set_at_path(obj: Any, path: Sequence[str], value: Any) -> Any:
    """Return a copy of obj with value placed at path (obj is not mutated)."""
    if not path:
        return value
    head, rest = path[0], path[1:]
    base: Dict[str, Any] = dict(obj) if isinstance(obj, Mapping) else {}
    base[head] = set_at_path(base.get(head), rest, value)
    return base


def delete_at_path(obj: Any, path: Sequence[str]) -> Any:
    """Return a copy of obj without the entry at path (obj is not mutated)."""
    if not path or not isinstance(obj, Mapping) or path[0] not in obj:
        return obj
    head, rest = path[0], path[1:]
    base = dict(obj)
    if not rest:
        del base[head]
    else:
        base[head] = delete_at_path(base[head], rest)
    return base
