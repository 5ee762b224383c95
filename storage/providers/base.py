"""
Abstract base class for storage providers.

Every backend the storage manager can route to implements this contract.
"""
from abc import ABC, abstractmethod
from typing import List, Optional

from common.types import ChunkInfo, ProviderType, QuotaInfo, UploadResult


class StorageProvider(ABC):
    """
    Uniform upload/download/url/delete/quota contract.

    ``is_available`` is a pure configuration check and never touches the
    network.
    """

    name: str = "Unknown"
    provider_type: ProviderType

    @abstractmethod
    def is_available(self) -> bool:
        """Whether the provider has everything it needs to serve requests."""
        pass

    @abstractmethod
    async def upload_file(self, data: bytes, filename: str) -> UploadResult:
        """
        Store a file.

        Args:
            data: File contents
            filename: Original file name

        Returns:
            UploadResult describing where every chunk went
        """
        pass

    @abstractmethod
    async def download_file(
        self,
        file_id: str,
        provider_id: Optional[str] = None,
        chunks: Optional[List[ChunkInfo]] = None,
    ) -> bytes:
        """
        Fetch a stored file.

        Args:
            file_id: File handle returned by upload_file
            provider_id: Backend credential that stored the file, when relevant
            chunks: Persisted chunk list, when the file was chunked

        Returns:
            The complete file contents
        """
        pass

    @abstractmethod
    async def get_download_url(
        self,
        file_id: str,
        provider_id: Optional[str] = None,
        total_chunks: Optional[int] = None,
    ) -> str:
        """Direct URL for fetching a stored file; ``total_chunks`` is the persisted chunk count, when known."""
        pass

    @abstractmethod
    async def delete_file(self, file_id: str) -> bool:
        """Delete a stored file. Returns True on success."""
        pass

    @abstractmethod
    async def get_quota(self) -> Optional[QuotaInfo]:
        """Usage figures, or None when the backend does not report them."""
        pass

    async def close(self) -> None:
        """Release network resources held by the provider."""
        return None
