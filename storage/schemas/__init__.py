"""Pydantic schemas for API requests and responses."""

from storage.schemas.storage import (
    ChunkResponse,
    UploadResponse,
    DownloadRequest,
    DownloadUrlResponse,
    ProviderStatus,
    StorageStatusResponse,
    ProviderListResponse,
    BotStatus,
    BotListResponse,
    ErrorResponse
)

__all__ = [
    "ChunkResponse",
    "UploadResponse",
    "DownloadRequest",
    "DownloadUrlResponse",
    "ProviderStatus",
    "StorageStatusResponse",
    "ProviderListResponse",
    "BotStatus",
    "BotListResponse",
    "ErrorResponse"
]
