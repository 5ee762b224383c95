"""
Object storage providers (Cloudflare R2, Backblaze B2).

Both report availability from their credentials but do not implement any
transfer yet; every operation raises.
"""

from typing import List, Mapping, Optional, Tuple

from common.exceptions import ProviderNotConfiguredError, ProviderNotImplementedError
from common.logging_config import get_logger
from common.types import ChunkInfo, ProviderType, QuotaInfo, UploadResult
from storage.config import B2_ENV_KEYS, R2_ENV_KEYS, read_env_values
from storage.providers.base import StorageProvider

logger = get_logger(__name__)


class ObjectStorageProvider(StorageProvider):
    """Credential-gated provider whose operations are not implemented."""

    env_keys: Tuple[str, ...] = ()

    def __init__(self, env: Optional[Mapping[str, str]] = None):
        self.settings = read_env_values(self.env_keys, env)
        if not self.is_available():
            missing = [key for key, value in self.settings.items() if value is None]
            logger.debug(f"{self.name} provider unavailable [missing={','.join(missing)}]")

    def is_available(self) -> bool:
        return all(value is not None for value in self.settings.values())

    async def upload_file(self, data: bytes, filename: str) -> UploadResult:
        self._unsupported("upload")

    async def download_file(
        self,
        file_id: str,
        provider_id: Optional[str] = None,
        chunks: Optional[List[ChunkInfo]] = None,
    ) -> bytes:
        self._unsupported("download")

    async def get_download_url(
        self,
        file_id: str,
        provider_id: Optional[str] = None,
        total_chunks: Optional[int] = None,
    ) -> str:
        self._unsupported("presigned URL")

    async def delete_file(self, file_id: str) -> bool:
        self._unsupported("delete")

    async def get_quota(self) -> Optional[QuotaInfo]:
        return None

    def _unsupported(self, operation: str):
        if not self.is_available():
            raise ProviderNotConfiguredError(f"{self.name} not configured")
        raise ProviderNotImplementedError(f"{self.name} {operation} not yet implemented")


class CloudflareR2Provider(ObjectStorageProvider):
    name = "Cloudflare R2"
    provider_type = ProviderType.R2
    env_keys = R2_ENV_KEYS


class BackblazeB2Provider(ObjectStorageProvider):
    name = "Backblaze B2"
    provider_type = ProviderType.B2
    env_keys = B2_ENV_KEYS
