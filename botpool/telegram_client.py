"""Chunked file transport over the Telegram Bot API for a single bot."""

import asyncio
import uuid
from collections import OrderedDict
from typing import Awaitable, Callable, List, Optional, Any

import httpx

from botpool.credentials import BotCredential
from botpool.retry import RetryPolicy, DEFAULT_RETRY_POLICY, retry_with_backoff
from common.constants import (
    TELEGRAM_API_BASE,
    TELEGRAM_MAX_CHUNK_BYTES,
    MANIFEST_CACHE_SIZE,
    UPLOAD_TIMEOUT_SECONDS,
    METADATA_TIMEOUT_SECONDS,
)
from common.exceptions import (
    BadRequestError,
    ChunkDownloadError,
    ChunkedFileUrlError,
    ChunkManifestRequiredError,
    CredentialRejectedError,
    RateLimitError,
    StorageException,
    TransientTransportError,
)
from common.logging_config import get_logger
from common.types import ChunkInfo, ProviderType, UploadResult

logger = get_logger(__name__)


def split_into_chunks(data: bytes, chunk_size: int = TELEGRAM_MAX_CHUNK_BYTES) -> List[bytes]:
    """
    Split a buffer into fixed-size slices.

    Every slice but the last is exactly ``chunk_size`` bytes, so chunk
    boundaries can be re-derived from the chunk size alone. An empty buffer
    yields one empty slice.
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    if not data:
        return [b""]
    return [data[offset:offset + chunk_size] for offset in range(0, len(data), chunk_size)]


def chunk_filename(filename: str, chunk_index: int, total_chunks: int) -> str:
    """Document name for a stored slice; unchunked files keep their name."""
    if total_chunks == 1:
        return filename
    return f"{filename}.part{chunk_index:03d}"


class TelegramTransport:
    """
    Moves one logical file to or from one bot.

    Payloads larger than the per-message ceiling are sent as ordered
    documents, one per chunk, each call retried with backoff. The transport
    remembers the chunk lists of its most recent uploads so a download by the
    first chunk's id can reassemble the whole file; callers that persist the
    chunk list pass it back explicitly.

    A file with no known chunk list is read as a single chunk only when that
    chunk is smaller than the chunk ceiling. A full-size first chunk may be
    followed by more, so it is refused rather than returned as a partial file.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        api_base: str = TELEGRAM_API_BASE,
        chunk_size: int = TELEGRAM_MAX_CHUNK_BYTES,
        retry_policy: RetryPolicy = DEFAULT_RETRY_POLICY,
        upload_timeout: float = UPLOAD_TIMEOUT_SECONDS,
        metadata_timeout: float = METADATA_TIMEOUT_SECONDS,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        manifest_cache_size: int = MANIFEST_CACHE_SIZE,
    ):
        """
        Args:
            client: Shared httpx client (created lazily when omitted)
            api_base: Bot API root URL
            chunk_size: Per-message size ceiling in bytes
            retry_policy: Backoff schedule for every network call
            upload_timeout: Bound for one chunk upload or fetch, in seconds
            metadata_timeout: Bound for one getFile call, in seconds
            sleep: Awaitable sleep used between retries
            manifest_cache_size: Most recent uploads whose chunk list is remembered
        """
        self._client = client
        self.api_base = api_base.rstrip("/")
        self.chunk_size = chunk_size
        self.retry_policy = retry_policy
        self.upload_timeout = upload_timeout
        self.metadata_timeout = metadata_timeout
        self._sleep = sleep
        self.manifest_cache_size = manifest_cache_size
        self._manifests: "OrderedDict[str, List[ChunkInfo]]" = OrderedDict()

    def _ensure_client(self) -> httpx.AsyncClient:
        """Ensure the HTTP client is created."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.upload_timeout)
            logger.info(f"Created Bot API HTTP client [api_base={self.api_base}]")
        return self._client

    async def close(self):
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def get_manifest(self, file_id: str) -> Optional[List[ChunkInfo]]:
        """Chunk list recorded for a recent upload by this transport, if still cached."""
        manifest = self._manifests.get(file_id)
        if manifest is None:
            return None
        self._manifests.move_to_end(file_id)
        return list(manifest)

    def _remember_manifest(self, file_id: str, chunks: List[ChunkInfo]) -> None:
        self._manifests[file_id] = list(chunks)
        self._manifests.move_to_end(file_id)
        while len(self._manifests) > self.manifest_cache_size:
            self._manifests.popitem(last=False)

    async def upload(self, data: bytes, filename: str, bot: BotCredential) -> UploadResult:
        """
        Upload a buffer through one bot, chunking it if needed.

        Chunks are sent one after another in index order.

        Args:
            data: File contents
            filename: Original file name
            bot: Bot that stores every chunk

        Returns:
            UploadResult whose file_id is the first chunk's reference

        Raises:
            RetryExhaustedError: If a chunk kept failing with retryable errors
            TransportError: On a non-retryable Bot API error
        """
        slices = split_into_chunks(data, self.chunk_size)
        total_chunks = len(slices)
        upload_id = uuid.uuid4().hex[:12]

        logger.info(
            f"Uploading {filename} ({len(data)} bytes, {total_chunks} chunk(s)) "
            f"via {bot.bot_id} [upload_id={upload_id}]"
        )

        chunks: List[ChunkInfo] = []
        for chunk_index, payload in enumerate(slices):
            chunk_file_id = await retry_with_backoff(
                self._send_document,
                bot,
                payload,
                chunk_filename(filename, chunk_index, total_chunks),
                f"{upload_id}:{chunk_index}/{total_chunks}",
                policy=self.retry_policy,
                target=f"sendDocument bot={bot.bot_id} chunk={chunk_index + 1}/{total_chunks}",
                sleep=self._sleep,
            )
            chunks.append(
                ChunkInfo(
                    chunk_index=chunk_index,
                    file_id=chunk_file_id,
                    chunk_size=len(payload),
                    provider_id=bot.bot_id,
                )
            )
            logger.info(f"Stored chunk {chunk_index + 1}/{total_chunks} of {filename} [upload_id={upload_id}]")

        file_id = chunks[0].file_id
        self._remember_manifest(file_id, chunks)

        return UploadResult(
            file_id=file_id,
            provider=ProviderType.TELEGRAM.value,
            is_chunked=total_chunks > 1,
            total_chunks=total_chunks,
            chunks=chunks,
        )

    async def download(
        self,
        file_id: str,
        bot: BotCredential,
        chunks: Optional[List[ChunkInfo]] = None
    ) -> bytes:
        """
        Download a file and reassemble its chunks in index order.

        Args:
            file_id: Logical file id (first chunk reference)
            bot: Bot that stored the chunks
            chunks: Persisted chunk list; takes precedence over the in-process manifest

        Returns:
            The complete file contents

        Raises:
            ChunkDownloadError: If any chunk cannot be recovered
            ChunkManifestRequiredError: If no chunk list is known and the first
                chunk fills the chunk ceiling
        """
        manifest = self._resolve_manifest(file_id, chunks)
        unmanifested = manifest is None
        if unmanifested:
            logger.info(f"No chunk list known for file {file_id}, reading it as a single chunk")
            manifest = [ChunkInfo(chunk_index=0, file_id=file_id, chunk_size=0, provider_id=bot.bot_id)]
        ordered = sorted(manifest, key=lambda chunk: chunk.chunk_index)

        for expected_index, chunk in enumerate(ordered):
            if chunk.chunk_index != expected_index:
                raise ChunkDownloadError(
                    file_id,
                    expected_index,
                    BadRequestError(f"Chunk {expected_index} missing from manifest"),
                )

        parts: List[bytes] = []
        for chunk in ordered:
            try:
                data = await retry_with_backoff(
                    self._download_chunk,
                    bot,
                    chunk.file_id,
                    policy=self.retry_policy,
                    target=f"download bot={bot.bot_id} chunk={chunk.chunk_index + 1}/{len(ordered)}",
                    sleep=self._sleep,
                )
            except StorageException as e:
                logger.error(
                    f"Chunk {chunk.chunk_index} of file {file_id} unrecoverable, "
                    f"downloaded {sum(len(p) for p in parts)} bytes before failure"
                )
                raise ChunkDownloadError(file_id, chunk.chunk_index, e) from e

            if chunk.chunk_size and len(data) != chunk.chunk_size:
                raise ChunkDownloadError(
                    file_id,
                    chunk.chunk_index,
                    BadRequestError(f"expected {chunk.chunk_size} bytes, got {len(data)}"),
                )
            if unmanifested and len(data) >= self.chunk_size:
                raise ChunkManifestRequiredError(
                    f"File {file_id} fills a whole {self.chunk_size}-byte chunk and may continue "
                    f"in further chunks; pass its chunk list to download it"
                )
            parts.append(data)

        logger.info(f"Downloaded file {file_id} ({len(ordered)} chunk(s)) via {bot.bot_id}")
        return b"".join(parts)

    async def get_download_url(
        self,
        file_id: str,
        bot: BotCredential,
        total_chunks: Optional[int] = None
    ) -> str:
        """
        Resolve a direct, time-limited URL for a single-chunk file.

        Args:
            file_id: Logical file id (first chunk reference)
            bot: Bot that stored the file
            total_chunks: Persisted chunk count; takes precedence over the in-process manifest

        Raises:
            ChunkedFileUrlError: If the file is stored in several chunks
            ChunkManifestRequiredError: If the chunk count is unknown and the
                first chunk fills the chunk ceiling
        """
        if total_chunks is None:
            manifest = self.get_manifest(file_id)
            if manifest is not None:
                total_chunks = len(manifest)

        if total_chunks is not None and total_chunks > 1:
            raise ChunkedFileUrlError(
                f"File {file_id} is stored in {total_chunks} chunks; download it instead"
            )

        file_info = await retry_with_backoff(
            self._get_file,
            bot,
            file_id,
            policy=self.retry_policy,
            target=f"getFile bot={bot.bot_id}",
            sleep=self._sleep,
        )

        file_size = file_info.get("file_size")
        if total_chunks is None and file_size is not None and file_size >= self.chunk_size:
            raise ChunkManifestRequiredError(
                f"File {file_id} fills a whole {self.chunk_size}-byte chunk and may continue "
                f"in further chunks; pass its chunk count to get a URL"
            )
        return self.file_url(bot, file_info["file_path"])

    def method_url(self, bot: BotCredential, method: str) -> str:
        return f"{self.api_base}/bot{bot.token}/{method}"

    def file_url(self, bot: BotCredential, file_path: str) -> str:
        return f"{self.api_base}/file/bot{bot.token}/{file_path}"

    def _resolve_manifest(
        self,
        file_id: str,
        chunks: Optional[List[ChunkInfo]]
    ) -> Optional[List[ChunkInfo]]:
        if chunks:
            return list(chunks)
        return self.get_manifest(file_id)

    async def _send_document(
        self,
        bot: BotCredential,
        payload: bytes,
        document_name: str,
        caption: str
    ) -> str:
        """Internal implementation of one sendDocument call without retry logic."""
        client = self._ensure_client()

        response = await self._bounded(
            client.post(
                self.method_url(bot, "sendDocument"),
                data={"chat_id": bot.chat_id, "caption": caption},
                files={"document": (document_name, payload, "application/octet-stream")},
                timeout=self.upload_timeout,
            ),
            self.upload_timeout,
            "sendDocument",
        )
        result = self._parse_result(response, "sendDocument")

        document = result.get("document") if isinstance(result, dict) else None
        if not document or "file_id" not in document:
            raise BadRequestError("sendDocument response carries no document file_id")
        return document["file_id"]

    async def _get_file(self, bot: BotCredential, file_id: str) -> dict:
        """Internal implementation of getFile without retry logic."""
        client = self._ensure_client()

        response = await self._bounded(
            client.get(
                self.method_url(bot, "getFile"),
                params={"file_id": file_id},
                timeout=self.metadata_timeout,
            ),
            self.metadata_timeout,
            "getFile",
        )
        result = self._parse_result(response, "getFile")

        file_path = result.get("file_path") if isinstance(result, dict) else None
        if not file_path:
            raise BadRequestError(f"getFile returned no file_path for {file_id}")
        return result

    async def _download_chunk(self, bot: BotCredential, chunk_file_id: str) -> bytes:
        file_path = (await self._get_file(bot, chunk_file_id))["file_path"]
        client = self._ensure_client()

        response = await self._bounded(
            client.get(self.file_url(bot, file_path), timeout=self.upload_timeout),
            self.upload_timeout,
            "file download",
        )
        self._raise_for_status(response, "file download", self._safe_json(response))
        return response.content

    async def _bounded(self, request: Awaitable[httpx.Response], timeout: float, what: str) -> httpx.Response:
        """Await one HTTP request, converting timeouts and network errors to transient errors."""
        try:
            return await asyncio.wait_for(request, timeout=timeout)
        except asyncio.TimeoutError:
            raise TransientTransportError(f"{what} timed out after {timeout:.0f}s")
        except httpx.TimeoutException as e:
            raise TransientTransportError(f"{what} timed out: {type(e).__name__}")
        except httpx.TransportError as e:
            raise TransientTransportError(f"{what} network error: {type(e).__name__}: {e}")

    def _parse_result(self, response: httpx.Response, what: str) -> Any:
        payload = self._safe_json(response)
        self._raise_for_status(response, what, payload)

        if not isinstance(payload, dict):
            raise BadRequestError(f"{what} returned a non-JSON response", status_code=response.status_code)
        if not payload.get("ok"):
            self._raise_api_error(payload, what, response.status_code)
        return payload.get("result")

    def _raise_for_status(self, response: httpx.Response, what: str, payload: Optional[dict]) -> None:
        status_code = response.status_code
        error_code = payload.get("error_code") if isinstance(payload, dict) else None

        if status_code == 429 or error_code == 429:
            retry_after = None
            if isinstance(payload, dict):
                retry_after = (payload.get("parameters") or {}).get("retry_after")
            if retry_after is None:
                retry_after = _parse_retry_after_header(response.headers.get("Retry-After"))
            raise RateLimitError(
                f"{what} rate limited: {_describe(payload, status_code)}",
                retry_after=retry_after,
            )

        if status_code >= 500:
            raise TransientTransportError(
                f"{what} server error: {_describe(payload, status_code)}", status_code=status_code
            )

        if status_code in (401, 403):
            raise CredentialRejectedError(
                f"{what} rejected bot: {_describe(payload, status_code)}", status_code=status_code
            )

        if status_code >= 400:
            raise BadRequestError(
                f"{what} failed: {_describe(payload, status_code)}", status_code=status_code
            )

    def _raise_api_error(self, payload: dict, what: str, status_code: int) -> None:
        error_code = payload.get("error_code")
        if error_code in (401, 403):
            raise CredentialRejectedError(f"{what} rejected bot: {_describe(payload, status_code)}", status_code=error_code)
        if isinstance(error_code, int) and error_code >= 500:
            raise TransientTransportError(f"{what} server error: {_describe(payload, status_code)}", status_code=error_code)
        raise BadRequestError(f"{what} failed: {_describe(payload, status_code)}", status_code=error_code)

    @staticmethod
    def _safe_json(response: httpx.Response) -> Optional[dict]:
        content_type = response.headers.get("content-type", "")
        if "json" not in content_type:
            return None
        try:
            return response.json()
        except ValueError:
            return None


def _describe(payload: Optional[dict], status_code: int) -> str:
    if isinstance(payload, dict) and payload.get("description"):
        return f"{payload.get('error_code', status_code)} {payload['description']}"
    return f"HTTP {status_code}"


def _parse_retry_after_header(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None
