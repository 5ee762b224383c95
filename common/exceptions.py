"""Custom exception classes for the storage layer."""

from typing import List, Optional


class StorageException(Exception):
    """
    Base exception class for all storage-layer errors.
    """
    pass


class ConfigurationError(StorageException):
    """
    Raised when required configuration is absent or malformed.
    """
    pass


class ProviderNotConfiguredError(ConfigurationError):
    """
    Raised when an operation is invoked on a provider that is not configured.
    """
    pass


class ProviderNotImplementedError(StorageException):
    """
    Raised by provider adapters whose backend is not implemented yet.
    """
    pass


class TransportError(StorageException):
    """
    Base class for failures talking to the Bot API.

    ``retryable`` tells the retry executor whether another attempt may help.
    """

    retryable = False

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class TransientTransportError(TransportError):
    """
    Raised on network failures, timeouts and 5xx responses.
    """

    retryable = True


class RateLimitError(TransportError):
    """
    Raised when the Bot API answers 429, optionally with a retry-after hint.
    """

    retryable = True

    def __init__(self, message: str, retry_after: Optional[float] = None, status_code: Optional[int] = 429):
        super().__init__(message, status_code=status_code)
        self.retry_after = retry_after


class CredentialRejectedError(TransportError):
    """
    Raised when the Bot API rejects the bot itself (blocked, revoked token, 401/403).
    """
    pass


class BadRequestError(TransportError):
    """
    Raised on malformed requests or missing remote files (non-retryable 4xx).
    """
    pass


class RetryExhaustedError(StorageException):
    """
    Raised when an operation kept failing until the attempt cap was reached.
    """

    def __init__(self, target: str, attempts: int, last_error: Exception):
        super().__init__(f"{target} failed after {attempts} attempts: {last_error}")
        self.target = target
        self.attempts = attempts
        self.last_error = last_error


class ChunkDownloadError(StorageException):
    """
    Raised when a chunk cannot be recovered; the whole download is abandoned.
    """

    def __init__(self, file_id: str, chunk_index: int, cause: Exception):
        super().__init__(f"Failed to download chunk {chunk_index} of file {file_id}: {cause}")
        self.file_id = file_id
        self.chunk_index = chunk_index
        self.cause = cause


class ChunkedFileUrlError(StorageException):
    """
    Raised when a direct URL is requested for a file stored in several chunks.
    """
    pass


class ChunkManifestRequiredError(ChunkedFileUrlError):
    """
    Raised when a file with no known chunk list fills a whole chunk and may
    continue in further chunks. The caller must pass the persisted chunk list.
    """
    pass


class NoBotsAvailableError(StorageException):
    """
    Raised when no healthy Telegram bot can serve a request.
    """
    pass


class AllBotsFailedError(NoBotsAvailableError):
    """
    Raised when every healthy bot was tried for an upload and all of them failed.
    """

    def __init__(self, attempted: List[str], last_error: Optional[Exception]):
        super().__init__(
            f"No Telegram bots available: all {len(attempted)} bot(s) failed "
            f"({', '.join(attempted)}); last error: {last_error}"
        )
        self.attempted = attempted
        self.last_error = last_error


class UnknownBotError(StorageException):
    """
    Raised when a bot id does not belong to the configured pool.
    """
    pass


class NoStorageProvidersError(StorageException):
    """
    Raised when the primary and every fallback provider are unavailable or failed.
    """

    def __init__(self, message: str = "No storage providers available", attempts: Optional[list] = None):
        super().__init__(message)
        self.attempts = attempts or []
