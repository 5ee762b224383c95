"""Storage provider adapters."""

from storage.providers.base import StorageProvider
from storage.providers.object_storage import BackblazeB2Provider, CloudflareR2Provider
from storage.providers.telegram import TelegramStorageProvider

__all__ = [
    "StorageProvider",
    "TelegramStorageProvider",
    "CloudflareR2Provider",
    "BackblazeB2Provider",
]
