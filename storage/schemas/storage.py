"""Pydantic schemas for storage endpoints."""

from typing import List, Optional
from pydantic import BaseModel


class ChunkResponse(BaseModel):
    """One stored chunk of an uploaded file."""
    chunk_index: int
    file_id: str
    chunk_size: int
    provider_id: Optional[str] = None


class UploadResponse(BaseModel):
    """Response model for file upload."""
    file_id: str
    provider: str
    is_chunked: bool
    total_chunks: int
    chunks: List[ChunkResponse]
    used_provider: Optional[str] = None


class DownloadRequest(BaseModel):
    """Request model for downloading a file by its persisted chunk list."""
    chunks: List[ChunkResponse]


class DownloadUrlResponse(BaseModel):
    """Response model for direct download URLs."""
    url: str


class ProviderStatus(BaseModel):
    type: str
    available: bool
    name: str


class StorageStatusResponse(BaseModel):
    """Primary and fallback provider availability."""
    primary: ProviderStatus
    fallbacks: List[ProviderStatus]


class ProviderListResponse(BaseModel):
    """Providers that can currently serve requests."""
    providers: List[ProviderStatus]


class BotStatus(BaseModel):
    id: str
    name: str
    active: bool
    failures: int


class BotListResponse(BaseModel):
    """Health of every configured Telegram bot."""
    bots: List[BotStatus]


class ErrorResponse(BaseModel):
    """Body of every storage error response; ``code`` is a stable machine-readable tag."""
    detail: str
    code: str
