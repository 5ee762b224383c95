"""Shared data type definitions (ProviderType, ChunkInfo, UploadResult, QuotaInfo)."""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, List, Optional


class ProviderType(str, Enum):
    """Storage backends known to the storage manager."""

    TELEGRAM = "telegram"
    R2 = "cloudflare_r2"
    B2 = "backblaze_b2"
    LOCAL = "local"


@dataclass(frozen=True)
class ChunkInfo:
    """
    One stored slice of a logical file.

    Attributes:
        chunk_index: Zero-based position of the slice in the file
        file_id: Backend reference of this slice
        chunk_size: Slice length in bytes
        provider_id: Bot id that stored the slice
    """
    chunk_index: int
    file_id: str
    chunk_size: int
    provider_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChunkInfo":
        return cls(
            chunk_index=int(data["chunk_index"]),
            file_id=data["file_id"],
            chunk_size=int(data["chunk_size"]),
            provider_id=data.get("provider_id"),
        )


@dataclass
class UploadResult:
    """
    Outcome of a successful upload.

    ``file_id`` is the reference of the first chunk and serves as the
    logical file handle. ``used_provider`` is only filled in by the
    storage manager.
    """
    file_id: str
    provider: str
    is_chunked: bool
    total_chunks: int
    chunks: List[ChunkInfo] = field(default_factory=list)
    used_provider: Optional[str] = None

    def __post_init__(self):
        if self.total_chunks != len(self.chunks):
            raise ValueError(
                f"total_chunks={self.total_chunks} does not match {len(self.chunks)} chunk(s)"
            )
        if not self.is_chunked and self.total_chunks != 1:
            raise ValueError("Non-chunked upload must consist of exactly one chunk")

    @property
    def total_size(self) -> int:
        return sum(chunk.chunk_size for chunk in self.chunks)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class QuotaInfo:
    """Storage usage reported by a provider, in bytes."""
    used: int
    limit: int
    remaining: int
