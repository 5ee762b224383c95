"""Storage status API routes."""

from fastapi import APIRouter, Depends

from common.types import ProviderType
from storage.manager import StorageManager
from storage.providers import TelegramStorageProvider
from storage.schemas.storage import (
    BotListResponse,
    ProviderListResponse,
    StorageStatusResponse
)
from storage.service_locator import get_storage_manager

router = APIRouter(prefix="/storage", tags=["Storage"])


@router.get("/status", response_model=StorageStatusResponse)
async def storage_status(manager: StorageManager = Depends(get_storage_manager)):
    """
    Availability of the primary provider and each configured fallback.
    """
    return manager.get_status()


@router.get("/providers", response_model=ProviderListResponse)
async def list_providers(manager: StorageManager = Depends(get_storage_manager)):
    """
    Providers that are currently able to serve requests.
    """
    providers = [
        {"type": provider_type.value, "available": True, "name": manager.get_provider(provider_type).name}
        for provider_type in manager.available_types()
    ]
    return {"providers": providers}


@router.get("/bots", response_model=BotListResponse)
async def list_bots(manager: StorageManager = Depends(get_storage_manager)):
    """
    Health of every configured Telegram bot.

    Returns an empty list when the Telegram provider is not in use.
    """
    provider = manager.get_provider(ProviderType.TELEGRAM)
    if not isinstance(provider, TelegramStorageProvider):
        return {"bots": []}
    return {"bots": provider.pool.get_bot_status()}
