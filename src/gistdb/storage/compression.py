"""
Compression for the binary codec.

Gist files are text, so compressed frames travel as base64. zstd via the
zstandard library; frames always record their content size so decompression
needs no streaming.
"""

import base64

import zstandard as zstd

# Refuse to inflate anything beyond this (a gist holds far less)
MAX_DECOMPRESSED_BYTES = 64 * 1024 * 1024


def compress_to_text(data: bytes, level: int = 3) -> str:
    """
    Compress data with zstd and base64 encode the frame.

    Args:
        data: Raw bytes
        level: Compression level (1-22, default 3)

    Returns:
        ASCII text safe to store in a gist file
    """
    cctx = zstd.ZstdCompressor(level=level, write_content_size=True)
    return base64.b64encode(cctx.compress(data)).decode("ascii")


def decompress_from_text(text: str) -> bytes:
    """
    Reverse :func:`compress_to_text`.

    Raises:
        binascii.Error: text is not base64
        zstandard.ZstdError: payload is not a valid zstd frame
    """
    frame = base64.b64decode(text, validate=True)
    dctx = zstd.ZstdDecompressor()
    return dctx.decompress(frame, max_output_size=MAX_DECOMPRESSED_BYTES)
