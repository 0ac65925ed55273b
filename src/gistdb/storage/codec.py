"""
Payload codecs for gistdb.

A codec turns a JSON-representable value into gist-safe text and back:

- none:   compact JSON
- pretty: indented JSON (same information as none)
- binary: zstd-compressed JSON, base64 encoded, prefixed with an xxhash32
          checksum of the uncompressed bytes

When an encryption key is configured the chosen codec is wrapped by
:class:`EncryptedCodec`, which encrypts after serializing and decrypts before
deserializing. Codecs are plain objects built once per database handle and
passed explicitly to everything that reads or writes payloads.
"""

import json
import logging
from typing import Any, Optional, Union

import xxhash
import zstandard as zstd
from cryptography.exceptions import InvalidTag

from gistdb.core.contracts import CompressionType
from gistdb.core.errors import DecodeError, ValidationError
from gistdb.storage.compression import compress_to_text, decompress_from_text
from gistdb.storage.encryption import decrypt, encrypt

logger = logging.getLogger(__name__)

# Errors that mean "the stored text is not a payload we can read"
_UNREADABLE = (ValueError, TypeError, zstd.ZstdError, InvalidTag)


class Codec:
    """Serialization strategy interface."""

    mode: CompressionType

    def serialize(self, value: Any) -> str:
        raise NotImplementedError

    def deserialize(self, text: str) -> Any:
        raise NotImplementedError

    def size(self, value: Any) -> int:
        """UTF-8 byte size of the serialized value."""
        return len(self.serialize(value).encode("utf-8"))


class JsonCodec(Codec):
    """Compact JSON."""

    mode = CompressionType.NONE

    def serialize(self, value: Any) -> str:
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False)

    def deserialize(self, text: str) -> Any:
        try:
            return json.loads(text)
        except _UNREADABLE as e:
            raise DecodeError(f"value unreadable: {e}") from e


class PrettyJsonCodec(JsonCodec):
    """Human readable JSON, two-space indent."""

    mode = CompressionType.PRETTY

    def serialize(self, value: Any) -> str:
        return json.dumps(value, indent=2, ensure_ascii=False)


class BinaryCodec(Codec):
    """zstd frame of compact JSON, carried as ``<xxh32 hex>:<base64>``."""

    mode = CompressionType.BINARY

    def __init__(self, level: int = 3):
        self.level = level

    def serialize(self, value: Any) -> str:
        raw = json.dumps(value, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
        checksum = xxhash.xxh32(raw).hexdigest()
        payload = compress_to_text(raw, self.level)
        return f"{checksum}:{payload}"

    def deserialize(self, text: str) -> Any:
        checksum, sep, payload = text.partition(":")
        if not sep:
            raise DecodeError("value unreadable: missing checksum")
        try:
            raw = decompress_from_text(payload)
        except _UNREADABLE as e:
            raise DecodeError(f"value unreadable: {e}") from e

        if xxhash.xxh32(raw).hexdigest() != checksum:
            raise DecodeError("value unreadable: checksum mismatch")

        try:
            return json.loads(raw.decode("utf-8"))
        except _UNREADABLE as e:
            raise DecodeError(f"value unreadable: {e}") from e


class EncryptedCodec(Codec):
    """Decorator adding symmetric encryption around another codec."""

    def __init__(self, inner: Codec, encryption_key: str):
        self.inner = inner
        self.mode = inner.mode
        self._encryption_key = encryption_key

    def serialize(self, value: Any) -> str:
        return encrypt(self.inner.serialize(value), self._encryption_key)

    def deserialize(self, text: str) -> Any:
        try:
            plain = decrypt(text, self._encryption_key)
        except _UNREADABLE as e:
            logger.debug("codec.decrypt_failed err=%s", type(e).__name__)
            raise DecodeError("value unreadable: decryption failed") from e
        return self.inner.deserialize(plain)


def get_codec(
    mode: Union[CompressionType, str] = CompressionType.NONE,
    encryption_key: Optional[str] = None,
    zstd_level: int = 3,
) -> Codec:
    """
    Build the codec for a compression mode and optional encryption key.

    Args:
        mode: One of CompressionType (or its string value)
        encryption_key: Wrap the codec with encryption when set
        zstd_level: Compression level for binary mode

    Returns:
        Codec instance
    """
    try:
        mode = CompressionType(mode)
    except ValueError as e:
        raise ValidationError(f"unknown compression mode: {mode!r}") from e

    if mode is CompressionType.PRETTY:
        codec: Codec = PrettyJsonCodec()
    elif mode is CompressionType.BINARY:
        codec = BinaryCodec(level=zstd_level)
    else:
        codec = JsonCodec()

    if encryption_key:
        codec = EncryptedCodec(codec, encryption_key)
    return codec
