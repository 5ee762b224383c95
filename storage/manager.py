"""Storage manager: routes uploads to the primary provider with ordered fallback."""

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from common.exceptions import NoStorageProvidersError, ProviderNotConfiguredError, StorageException
from common.logging_config import get_logger
from common.types import ChunkInfo, ProviderType, QuotaInfo, UploadResult
from storage.config import DEFAULT_STORAGE_CONFIG, StorageConfig
from storage.providers import (
    BackblazeB2Provider,
    CloudflareR2Provider,
    StorageProvider,
    TelegramStorageProvider,
)

logger = get_logger(__name__)


@dataclass
class ProviderAttempt:
    """Outcome of trying one provider during a fallback upload."""
    provider: ProviderType
    outcome: str
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"provider": self.provider.value, "outcome": self.outcome, "error": self.error}


def build_default_providers(env: Optional[Mapping[str, str]] = None) -> Dict[ProviderType, StorageProvider]:
    """Construct every adapter that exists. LOCAL has none."""
    return {
        ProviderType.TELEGRAM: TelegramStorageProvider(env=env),
        ProviderType.R2: CloudflareR2Provider(env),
        ProviderType.B2: BackblazeB2Provider(env),
    }


class StorageManager:
    """
    Holds one adapter per provider type and picks among them.

    Uploads try the primary provider first and then each fallback in
    configured order, skipping providers that are not available.
    """

    def __init__(
        self,
        config: StorageConfig = DEFAULT_STORAGE_CONFIG,
        providers: Optional[Dict[ProviderType, StorageProvider]] = None,
    ):
        """
        Args:
            config: Primary/fallback selection
            providers: Adapters keyed by type (all built eagerly when omitted)
        """
        self.config = config
        self.providers: Dict[ProviderType, StorageProvider] = (
            providers if providers is not None else build_default_providers()
        )

        logger.info(
            f"Storage manager ready [primary={config.primary.value}] "
            f"[fallback={','.join(p.value for p in config.fallback) or 'none'}] "
            f"[available={','.join(p.value for p in self.available_types()) or 'none'}]"
        )

    def get_provider(self, provider_type: ProviderType) -> Optional[StorageProvider]:
        return self.providers.get(provider_type)

    def get_primary_provider(self) -> Optional[StorageProvider]:
        return self.get_provider(self.config.primary)

    def get_fallback_providers(self) -> List[StorageProvider]:
        """Configured fallbacks that are available, in order."""
        fallbacks = []
        for provider_type in self.config.fallback:
            provider = self.get_provider(provider_type)
            if provider is not None and provider.is_available():
                fallbacks.append(provider)
        return fallbacks

    def get_available_providers(self) -> List[StorageProvider]:
        return [provider for provider in self.providers.values() if provider.is_available()]

    def available_types(self) -> List[ProviderType]:
        return [provider_type for provider_type, provider in self.providers.items() if provider.is_available()]

    async def upload_with_fallback(self, data: bytes, filename: str) -> UploadResult:
        """
        Upload through the first provider that succeeds.

        Returns:
            UploadResult with ``used_provider`` set to the provider that stored it

        Raises:
            NoStorageProvidersError: If no candidate was available or all failed
        """
        attempts: List[ProviderAttempt] = []

        for provider_type in (self.config.primary, *self.config.fallback):
            provider = self.get_provider(provider_type)
            if provider is None or not provider.is_available():
                attempts.append(ProviderAttempt(provider_type, "unavailable"))
                continue

            try:
                result = await provider.upload_file(data, filename)
            except Exception as e:
                attempts.append(ProviderAttempt(provider_type, "failed", f"{type(e).__name__}: {e}"))
                logger.warning(
                    f"Upload of {filename} failed on provider {provider_type.value}: {type(e).__name__}: {e}",
                    exc_info=not isinstance(e, StorageException)
                )
                continue

            result.used_provider = provider_type.value
            attempts.append(ProviderAttempt(provider_type, "success"))
            if provider_type != self.config.primary:
                logger.warning(f"Stored {filename} on fallback provider {provider_type.value}")
            logger.info(f"Upload complete [provider={provider_type.value}] [file_id={result.file_id}]")
            return result

        logger.error(
            f"No storage provider accepted {filename}: "
            + "; ".join(f"{a.provider.value}={a.outcome}" for a in attempts)
        )
        raise NoStorageProvidersError(attempts=attempts)

    async def download_file(
        self,
        file_id: str,
        provider_type: ProviderType = ProviderType.TELEGRAM,
        provider_id: Optional[str] = None,
        chunks: Optional[List[ChunkInfo]] = None,
    ) -> bytes:
        provider = self._require(provider_type)
        return await provider.download_file(file_id, provider_id=provider_id, chunks=chunks)

    async def get_download_url(
        self,
        file_id: str,
        provider_type: ProviderType = ProviderType.TELEGRAM,
        provider_id: Optional[str] = None,
        total_chunks: Optional[int] = None,
    ) -> str:
        provider = self._require(provider_type)
        return await provider.get_download_url(file_id, provider_id=provider_id, total_chunks=total_chunks)

    async def delete_file(self, file_id: str, provider_type: ProviderType = ProviderType.TELEGRAM) -> bool:
        provider = self._require(provider_type)
        return await provider.delete_file(file_id)

    async def get_quota(self, provider_type: ProviderType = ProviderType.TELEGRAM) -> Optional[QuotaInfo]:
        provider = self._require(provider_type)
        return await provider.get_quota()

    def get_status(self) -> Dict[str, Any]:
        """Primary and fallback availability for ops endpoints."""
        primary = self.get_primary_provider()
        fallbacks = []
        for provider_type in self.config.fallback:
            provider = self.get_provider(provider_type)
            fallbacks.append({
                "type": provider_type.value,
                "available": provider is not None and provider.is_available(),
                "name": provider.name if provider is not None else "Unknown",
            })

        return {
            "primary": {
                "type": self.config.primary.value,
                "available": primary is not None and primary.is_available(),
                "name": primary.name if primary is not None else "Unknown",
            },
            "fallbacks": fallbacks,
        }

    async def close(self):
        for provider in self.providers.values():
            await provider.close()

    def _require(self, provider_type: ProviderType) -> StorageProvider:
        provider = self.get_provider(provider_type)
        if provider is None:
            raise ProviderNotConfiguredError(f"No adapter for storage provider {provider_type.value}")
        return provider
