"""Bot pool load balancer: round-robin selection and failover across bots."""

from typing import Dict, List, Optional, Set, Any

from botpool.credentials import BotCredential
from botpool.health import BotHealthRegistry, BotState
from botpool.telegram_client import TelegramTransport
from common.exceptions import (
    AllBotsFailedError,
    BadRequestError,
    ChunkDownloadError,
    CredentialRejectedError,
    NoBotsAvailableError,
    RateLimitError,
    RetryExhaustedError,
    StorageException,
    UnknownBotError,
)
from common.logging_config import get_logger
from common.types import ChunkInfo, UploadResult

logger = get_logger(__name__)


def root_cause(error: Exception) -> Exception:
    """Unwrap retry and chunk wrappers down to the transport error."""
    while True:
        if isinstance(error, RetryExhaustedError) and error.last_error is not None:
            error = error.last_error
        elif isinstance(error, ChunkDownloadError):
            error = error.cause
        else:
            return error


class BotPool:
    """
    Makes a set of bots behave as one transport.

    Uploads go to the next healthy bot in round-robin order. A failed
    upload is retried from scratch on the next untried healthy bot, and
    every outcome is reported to the health registry. Downloads must name
    the bot that stored the file, because chunks are only reachable through
    the bot that posted them.
    """

    def __init__(
        self,
        bots: List[BotCredential],
        transport: Optional[TelegramTransport] = None,
        registry: Optional[BotHealthRegistry] = None,
    ):
        """
        Args:
            bots: Configured bot credentials in rotation order
            transport: Chunked transport client (created when omitted)
            registry: Health registry (created over ``bots`` when omitted)
        """
        self._bots: Dict[str, BotCredential] = {bot.bot_id: bot for bot in bots}
        self.transport = transport or TelegramTransport()
        self.registry = registry or BotHealthRegistry(bots)
        self._cursor = 0

    def is_available(self) -> bool:
        """Whether any bot is configured."""
        return bool(self._bots)

    def bot_ids(self) -> List[str]:
        return list(self._bots)

    def get_bot(self, bot_id: str) -> BotCredential:
        bot = self._bots.get(bot_id)
        if bot is None:
            raise UnknownBotError(f"Bot {bot_id} is not configured")
        return bot

    def select_bot(self, exclude: Optional[Set[str]] = None) -> BotCredential:
        """
        Pick the next healthy bot by round-robin.

        A bot whose recovery deadline has passed is handed out once as a
        probation attempt.

        Args:
            exclude: Bot ids already tried for the current request

        Raises:
            NoBotsAvailableError: If no healthy bot remains
        """
        candidates = {
            bot_id for bot_id in self.registry.list_healthy()
            if not exclude or bot_id not in exclude
        }
        if not candidates:
            raise NoBotsAvailableError("No Telegram bots available")

        # The cursor walks the configured order, skipping bots that are not candidates.
        order = list(self._bots)
        for offset in range(len(order)):
            position = (self._cursor + offset) % len(order)
            if order[position] in candidates:
                bot_id = order[position]
                self._cursor = (position + 1) % len(order)
                break
        else:
            raise NoBotsAvailableError("No Telegram bots available")

        if self.registry.state_of(bot_id) == BotState.PROBATION:
            self.registry.begin_probation(bot_id)

        return self._bots[bot_id]

    async def upload_large_file(self, data: bytes, filename: str) -> UploadResult:
        """
        Upload a file through the pool, failing over to other bots.

        The whole upload is restarted on the next healthy bot after a
        failure, at most once per bot. A request the Bot API rejects as
        malformed is not retried on other bots and does not count against
        the bot that reported it.

        Raises:
            NoBotsAvailableError: If no bot is healthy
            AllBotsFailedError: If every healthy bot failed the upload
            BadRequestError: If the Bot API rejected the request itself
        """
        tried: Set[str] = set()
        attempted: List[str] = []
        last_error: Optional[Exception] = None

        while True:
            try:
                bot = self.select_bot(exclude=tried)
            except NoBotsAvailableError:
                if not attempted:
                    raise
                raise AllBotsFailedError(attempted, last_error) from last_error

            tried.add(bot.bot_id)
            attempted.append(bot.bot_id)

            try:
                result = await self.transport.upload(data, filename, bot)
            except StorageException as e:
                last_error = e
                if isinstance(root_cause(e), BadRequestError):
                    self.registry.release_probation(bot.bot_id)
                    logger.warning(f"Upload of {filename} rejected by the Bot API via {bot.bot_id}: {e}")
                    raise
                self._record_failure(bot.bot_id, e)
                logger.warning(
                    f"Upload of {filename} failed on {bot.bot_id}, trying next bot: {e}"
                )
                continue
            except BaseException:
                # Cancelled or an unexpected error: hand back any probation claim before propagating.
                self.registry.release_probation(bot.bot_id)
                raise

            self.registry.record_success(bot.bot_id)
            logger.info(
                f"Uploaded {filename} via {bot.bot_id} "
                f"[file_id={result.file_id}] [chunks={result.total_chunks}] [bytes={result.total_size}]"
            )
            return result

    async def download_file(
        self,
        file_id: str,
        bot_id: str,
        chunks: Optional[List[ChunkInfo]] = None
    ) -> bytes:
        """
        Download a file through the bot that stored it.

        Raises:
            UnknownBotError: If bot_id is not configured
            ChunkDownloadError: If any chunk is unrecoverable
        """
        bot = self.get_bot(bot_id)
        try:
            data = await self.transport.download(file_id, bot, chunks=chunks)
        except StorageException as e:
            self._record_credential_failure(bot_id, e)
            raise
        self.registry.record_success(bot_id)
        return data

    async def get_download_url(self, file_id: str, bot_id: str, total_chunks: Optional[int] = None) -> str:
        """
        Resolve a direct URL through the bot that stored the file.

        Args:
            file_id: Logical file id
            bot_id: Bot that stored the file
            total_chunks: Persisted chunk count, when known

        Raises:
            UnknownBotError: If bot_id is not configured
            ChunkedFileUrlError: If the file has several chunks
        """
        bot = self.get_bot(bot_id)
        try:
            url = await self.transport.get_download_url(file_id, bot, total_chunks=total_chunks)
        except StorageException as e:
            self._record_credential_failure(bot_id, e)
            raise
        self.registry.record_success(bot_id)
        return url

    def get_bot_status(self) -> List[Dict[str, Any]]:
        """Health snapshot of every bot for ops endpoints."""
        return self.registry.get_status()

    async def close(self):
        await self.transport.close()

    def _record_failure(self, bot_id: str, error: Exception) -> None:
        cause = root_cause(error)
        if isinstance(cause, RateLimitError):
            self.registry.record_failure(bot_id, is_rate_limit=True, retry_after=cause.retry_after)
        else:
            self.registry.record_failure(bot_id)

    def _record_credential_failure(self, bot_id: str, error: Exception) -> None:
        # A missing file says nothing about the bot; only rejections count against it.
        if isinstance(root_cause(error), CredentialRejectedError):
            self.registry.record_failure(bot_id)
