"""
Storage layer: codecs, compression, encryption, fragmentation, root index
and attachments.
"""

from gistdb.storage.attachments import AttachmentManager
from gistdb.storage.codec import Codec, get_codec
from gistdb.storage.compression import compress_to_text, decompress_from_text
from gistdb.storage.fragmenter import pack, unpack

__all__ = [
    "AttachmentManager",
    "Codec",
    "get_codec",
    "compress_to_text",
    "decompress_from_text",
    "pack",
    "unpack",
]
