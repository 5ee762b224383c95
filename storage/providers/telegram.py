"""Telegram storage provider backed by the bot pool."""

from typing import List, Mapping, Optional

from botpool.credentials import load_bot_credentials
from botpool.pool import BotPool
from botpool.telegram_client import TelegramTransport
from common.exceptions import NoBotsAvailableError
from common.logging_config import get_logger
from common.types import ChunkInfo, ProviderType, QuotaInfo, UploadResult
from storage.config import TELEGRAM_API_BASE
from storage.providers.base import StorageProvider

logger = get_logger(__name__)


class TelegramStorageProvider(StorageProvider):
    """
    Stores files as documents posted to a Telegram chat by a pool of bots.

    Reads go through the bot that stored the file. When the caller does not
    know which bot that was, the first configured bot is used.
    """

    name = "Telegram"
    provider_type = ProviderType.TELEGRAM

    def __init__(self, pool: Optional[BotPool] = None, env: Optional[Mapping[str, str]] = None):
        """
        Args:
            pool: Bot pool to store through (built from ``env`` when omitted)
            env: Mapping holding the bot settings (defaults to os.environ)
        """
        if pool is None:
            bots = load_bot_credentials(env)
            pool = BotPool(bots, transport=TelegramTransport(api_base=TELEGRAM_API_BASE))
        self.pool = pool

    def is_available(self) -> bool:
        return self.pool.is_available()

    async def upload_file(self, data: bytes, filename: str) -> UploadResult:
        return await self.pool.upload_large_file(data, filename)

    async def download_file(
        self,
        file_id: str,
        provider_id: Optional[str] = None,
        chunks: Optional[List[ChunkInfo]] = None,
    ) -> bytes:
        bot_id = provider_id or self._default_bot_id()
        return await self.pool.download_file(file_id, bot_id, chunks=chunks)

    async def get_download_url(
        self,
        file_id: str,
        provider_id: Optional[str] = None,
        total_chunks: Optional[int] = None,
    ) -> str:
        bot_id = provider_id or self._default_bot_id()
        return await self.pool.get_download_url(file_id, bot_id, total_chunks=total_chunks)

    async def delete_file(self, file_id: str) -> bool:
        # Bots cannot delete documents from the storage chat; removal is a metadata change.
        logger.info(f"Deleted file {file_id} from metadata only [provider=telegram]")
        return True

    async def get_quota(self) -> Optional[QuotaInfo]:
        return None

    async def close(self) -> None:
        await self.pool.close()

    def _default_bot_id(self) -> str:
        bot_ids = self.pool.bot_ids()
        if not bot_ids:
            raise NoBotsAvailableError("No Telegram bots available")
        return bot_ids[0]
