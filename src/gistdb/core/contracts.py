"""
Core data structures (dataclasses) for gistdb.

All core data structures are defined as explicit dataclasses. The ``to_dict`` /
``from_dict`` pairs produce the camelCase wire layout stored inside gists.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

GITHUB_API_URL = "https://api.github.com"

# Gist API returns at most ~1MB of inline content per file.
MAX_CHUNK_BYTES = 1_000_000
MAX_CHUNKS_PER_BLOB = 10


class CompressionType(str, Enum):
    """Serialization mode applied to every stored payload."""

    NONE = "none"
    PRETTY = "pretty"
    BINARY = "binary"


@dataclass
class Config:
    """Configuration for a gist database handle."""

    token: Optional[str] = None
    gist_id: Optional[str] = None  # root gist; created by init() when unset
    description: Optional[str] = None
    public: bool = False

    # Codec
    compression: CompressionType = CompressionType.NONE
    encryption_key: Optional[str] = None  # never stored remotely
    zstd_level: int = 3

    # Fragmentation limits
    max_chunk_bytes: int = MAX_CHUNK_BYTES
    max_chunks: int = MAX_CHUNKS_PER_BLOB

    # Transport
    api_url: str = GITHUB_API_URL
    timeout: float = 30.0
    max_workers: int = 8


@dataclass
class Blob:
    """A remote object holding named text parts."""

    id: str
    url: str
    parts: Dict[str, str] = field(default_factory=dict)
    description: Optional[str] = None


@dataclass
class TTL:
    """Time-to-live metadata, in epoch milliseconds / milliseconds."""

    created_at: int
    ttl: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"createdAt": self.created_at, "ttl": self.ttl}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TTL":
        ttl = data.get("ttl")
        return cls(
            created_at=int(data.get("createdAt") or 0),
            ttl=int(ttl) if ttl is not None else None,
        )


@dataclass
class DocRef:
    """Root index pointer to a key's document blob."""

    id: str
    ttl: TTL

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "ttl": self.ttl.to_dict()}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DocRef":
        return cls(id=data["id"], ttl=TTL.from_dict(data.get("ttl") or {}))


@dataclass
class AttachmentRef:
    """Reference from a document record to its attachment blob."""

    id: str
    url: str

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "url": self.url}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AttachmentRef":
        return cls(id=data["id"], url=data.get("url", ""))


@dataclass
class DocumentRecord:
    """
    Payload stored inside a key's own blob.

    Its four top-level fields (value, ttl, rev, extraFile) are the unit of
    fragmentation.
    """

    value: Dict[str, Any]
    ttl: TTL
    rev: str
    extra_file: Optional[AttachmentRef] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "value": self.value,
            "ttl": self.ttl.to_dict(),
            "rev": self.rev,
            "extraFile": self.extra_file.to_dict() if self.extra_file else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DocumentRecord":
        extra_file = data.get("extraFile")
        return cls(
            value=data.get("value"),
            ttl=TTL.from_dict(data.get("ttl") or {}),
            rev=data.get("rev"),
            extra_file=AttachmentRef.from_dict(extra_file) if extra_file else None,
        )


@dataclass
class Doc:
    """Result of a successful get/set."""

    id: str  # document blob id
    value: Dict[str, Any]
    rev: str
    ttl: TTL
    gist: Blob
    files: Dict[str, str] = field(default_factory=dict)  # attachment parts
    attachment: Optional[AttachmentRef] = None
