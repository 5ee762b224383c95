"""Unit tests for the chunked Telegram transport."""

import asyncio

import httpx
import pytest

from botpool.retry import RetryPolicy
from botpool.telegram_client import TelegramTransport, chunk_filename, split_into_chunks
from common.constants import TELEGRAM_MAX_CHUNK_BYTES
from common.exceptions import (
    BadRequestError,
    ChunkDownloadError,
    ChunkedFileUrlError,
    ChunkManifestRequiredError,
    CredentialRejectedError,
    RetryExhaustedError,
    TransientTransportError,
)
from common.types import ChunkInfo
from tests.conftest import rate_limited, server_error, unauthorized


class TestChunking:

    def test_chunk_ceiling_is_twenty_mebibytes(self):
        assert TELEGRAM_MAX_CHUNK_BYTES == 20 * 1024 * 1024

    def test_split_exact_multiple(self):
        assert split_into_chunks(b"abcdefgh", 4) == [b"abcd", b"efgh"]

    def test_split_with_remainder(self):
        assert split_into_chunks(b"abcdefghij", 4) == [b"abcd", b"efgh", b"ij"]

    def test_small_payload_is_single_chunk(self):
        assert split_into_chunks(b"abc", 4) == [b"abc"]

    def test_empty_payload_is_one_empty_chunk(self):
        assert split_into_chunks(b"", 4) == [b""]

    def test_invalid_chunk_size(self):
        with pytest.raises(ValueError):
            split_into_chunks(b"abc", 0)

    def test_chunk_filename(self):
        assert chunk_filename("report.pdf", 0, 1) == "report.pdf"
        assert chunk_filename("report.pdf", 2, 3) == "report.pdf.part002"


class TestUpload:

    @pytest.mark.asyncio
    async def test_small_file_single_chunk(self, make_transport, fake_api, bots):
        transport = make_transport()

        result = await transport.upload(b"hello telegram", "hello.txt", bots[0])

        assert result.is_chunked is False
        assert result.total_chunks == 1
        assert result.provider == "telegram"
        assert result.file_id == result.chunks[0].file_id
        assert result.chunks[0].chunk_size == 14
        assert result.chunks[0].provider_id == "bot-1"
        assert fake_api.count("sendDocument", bots[0].token) == 1

    @pytest.mark.asyncio
    async def test_large_file_is_split_in_order(self, make_transport, fake_api, bots):
        transport = make_transport(chunk_size=4)

        result = await transport.upload(b"0123456789", "data.bin", bots[0])

        assert result.is_chunked is True
        assert result.total_chunks == 3
        assert [chunk.chunk_index for chunk in result.chunks] == [0, 1, 2]
        assert [chunk.chunk_size for chunk in result.chunks] == [4, 4, 2]
        assert result.total_size == 10
        assert len({chunk.file_id for chunk in result.chunks}) == 3

        upload_id = fake_api.captions[0].split(":")[0]
        assert fake_api.captions == [f"{upload_id}:0/3", f"{upload_id}:1/3", f"{upload_id}:2/3"]

    @pytest.mark.asyncio
    async def test_transient_failure_is_retried(self, make_transport, fake_api, bots, sleeps):
        fake_api.fail(bots[0].token, "sendDocument", server_error(), times=2)
        transport = make_transport()

        result = await transport.upload(b"payload", "file.txt", bots[0])

        assert result.total_chunks == 1
        assert fake_api.count("sendDocument") == 3
        assert len(sleeps) == 2

    @pytest.mark.asyncio
    async def test_rate_limit_honours_retry_after(self, make_transport, fake_api, bots, sleeps):
        fake_api.fail(bots[0].token, "sendDocument", rate_limited(7))
        transport = make_transport()

        await transport.upload(b"payload", "file.txt", bots[0])

        assert sleeps[0] >= 7

    @pytest.mark.asyncio
    async def test_credential_rejection_is_not_retried(self, make_transport, fake_api, bots, sleeps):
        fake_api.fail(bots[0].token, "sendDocument", unauthorized())
        transport = make_transport()

        with pytest.raises(CredentialRejectedError):
            await transport.upload(b"payload", "file.txt", bots[0])

        assert fake_api.count("sendDocument") == 1
        assert sleeps == []

    @pytest.mark.asyncio
    async def test_persistent_failure_exhausts_retries(self, make_transport, fake_api, bots):
        fake_api.fail_always(bots[0].token, "sendDocument", server_error())
        transport = make_transport()

        with pytest.raises(RetryExhaustedError) as exc_info:
            await transport.upload(b"payload", "file.txt", bots[0])

        assert fake_api.count("sendDocument") == 6
        assert isinstance(exc_info.value.last_error, TransientTransportError)

    @pytest.mark.asyncio
    async def test_network_error_is_transient(self, bots, fake_sleep):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) == 1:
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(200, json={"ok": True, "result": {"document": {"file_id": "doc-1"}}})

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        transport = TelegramTransport(client=client, sleep=fake_sleep)

        result = await transport.upload(b"x", "x.txt", bots[0])

        assert result.file_id == "doc-1"
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_slow_request_times_out(self, bots, fake_sleep):
        async def handler(request):
            await asyncio.sleep(1)
            return httpx.Response(200, json={"ok": True, "result": {"document": {"file_id": "late"}}})

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        transport = TelegramTransport(
            client=client,
            sleep=fake_sleep,
            upload_timeout=0.01,
            retry_policy=RetryPolicy(max_attempts=1),
        )

        with pytest.raises(RetryExhaustedError) as exc_info:
            await transport.upload(b"x", "x.txt", bots[0])

        assert isinstance(exc_info.value.last_error, TransientTransportError)

    @pytest.mark.asyncio
    async def test_response_without_document_is_rejected(self, bots, fake_sleep):
        def handler(request):
            return httpx.Response(200, json={"ok": True, "result": {"message_id": 1}})

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        transport = TelegramTransport(client=client, sleep=fake_sleep)

        with pytest.raises(BadRequestError):
            await transport.upload(b"x", "x.txt", bots[0])


class TestDownload:

    @pytest.mark.asyncio
    async def test_round_trip_chunked(self, make_transport, bots):
        transport = make_transport(chunk_size=4)
        payload = bytes(range(10)) * 3

        result = await transport.upload(payload, "data.bin", bots[0])
        downloaded = await transport.download(result.file_id, bots[0])

        assert downloaded == payload

    @pytest.mark.asyncio
    async def test_download_with_persisted_chunks_out_of_order(self, make_transport, bots):
        uploader = make_transport(chunk_size=4)
        result = await uploader.upload(b"abcdefghij", "data.bin", bots[0])

        fresh = make_transport(chunk_size=4)
        shuffled = [result.chunks[2], result.chunks[0], result.chunks[1]]
        downloaded = await fresh.download(result.file_id, bots[0], chunks=shuffled)

        assert downloaded == b"abcdefghij"

    @pytest.mark.asyncio
    async def test_unknown_file_id_is_treated_as_single_chunk(self, make_transport, bots):
        uploader = make_transport()
        result = await uploader.upload(b"single", "s.txt", bots[0])

        fresh = make_transport()
        assert await fresh.download(result.file_id, bots[0]) == b"single"

    @pytest.mark.asyncio
    async def test_full_chunk_without_chunk_list_is_refused(self, make_transport, bots):
        uploader = make_transport(chunk_size=4)
        result = await uploader.upload(b"0123456789", "digits.txt", bots[0])

        fresh = make_transport(chunk_size=4)

        with pytest.raises(ChunkManifestRequiredError):
            await fresh.download(result.file_id, bots[0])
        assert await fresh.download(result.file_id, bots[0], chunks=result.chunks) == b"0123456789"

    @pytest.mark.asyncio
    async def test_evicted_manifest_is_not_guessed(self, make_transport, bots):
        transport = make_transport(chunk_size=4, manifest_cache_size=2)
        first = await transport.upload(b"0123456789", "a.bin", bots[0])
        await transport.upload(b"abcdefgh", "b.bin", bots[0])
        await transport.upload(b"ABCDEFGH", "c.bin", bots[0])

        assert transport.get_manifest(first.file_id) is None
        with pytest.raises(ChunkManifestRequiredError):
            await transport.download(first.file_id, bots[0])

    @pytest.mark.asyncio
    async def test_failed_chunk_returns_no_partial_data(self, make_transport, fake_api, bots):
        transport = make_transport(chunk_size=4)
        result = await transport.upload(b"abcdefghij", "data.bin", bots[0])

        fake_api.fail(bots[0].token, "file", httpx.Response(200, content=b"abcd"))
        fake_api.fail_always(bots[0].token, "file", server_error())

        with pytest.raises(ChunkDownloadError) as exc_info:
            await transport.download(result.file_id, bots[0])

        assert exc_info.value.chunk_index == 1
        assert exc_info.value.file_id == result.file_id

    @pytest.mark.asyncio
    async def test_missing_chunk_in_manifest(self, make_transport, bots):
        transport = make_transport()
        chunks = [
            ChunkInfo(chunk_index=0, file_id="a", chunk_size=4),
            ChunkInfo(chunk_index=2, file_id="c", chunk_size=4),
        ]

        with pytest.raises(ChunkDownloadError) as exc_info:
            await transport.download("a", bots[0], chunks=chunks)

        assert exc_info.value.chunk_index == 1

    @pytest.mark.asyncio
    async def test_size_mismatch_is_rejected(self, make_transport, fake_api, bots):
        transport = make_transport()
        result = await transport.upload(b"abcd", "a.txt", bots[0])
        fake_api.fail(bots[0].token, "file", httpx.Response(200, content=b"ab"))

        with pytest.raises(ChunkDownloadError):
            await transport.download(result.file_id, bots[0])

    @pytest.mark.asyncio
    async def test_wrong_bot_cannot_read_chunk(self, make_transport, bots):
        transport = make_transport()
        result = await transport.upload(b"private", "p.txt", bots[0])

        with pytest.raises(ChunkDownloadError) as exc_info:
            await transport.download(result.file_id, bots[1])

        assert isinstance(exc_info.value.cause, BadRequestError)


class TestDownloadUrl:

    @pytest.mark.asyncio
    async def test_single_chunk_url(self, make_transport, bots):
        transport = make_transport()
        result = await transport.upload(b"hello", "hello.txt", bots[0])

        url = await transport.get_download_url(result.file_id, bots[0])

        assert url.startswith(f"https://api.telegram.org/file/bot{bots[0].token}/documents/")

    @pytest.mark.asyncio
    async def test_chunked_file_has_no_single_url(self, make_transport, fake_api, bots):
        transport = make_transport(chunk_size=4)
        result = await transport.upload(b"abcdefghij", "data.bin", bots[0])

        with pytest.raises(ChunkedFileUrlError):
            await transport.get_download_url(result.file_id, bots[0])

        assert fake_api.count("getFile") == 0

    @pytest.mark.asyncio
    async def test_unknown_chunk_count_with_full_chunk_is_refused(self, make_transport, bots):
        uploader = make_transport(chunk_size=4)
        result = await uploader.upload(b"abcdefghij", "data.bin", bots[0])

        fresh = make_transport(chunk_size=4)

        with pytest.raises(ChunkManifestRequiredError):
            await fresh.get_download_url(result.file_id, bots[0])
        with pytest.raises(ChunkedFileUrlError):
            await fresh.get_download_url(result.file_id, bots[0], total_chunks=3)

    @pytest.mark.asyncio
    async def test_persisted_single_chunk_count_skips_size_check(self, make_transport, bots):
        uploader = make_transport(chunk_size=4)
        result = await uploader.upload(b"abcd", "four.bin", bots[0])

        fresh = make_transport(chunk_size=4)
        url = await fresh.get_download_url(result.file_id, bots[0], total_chunks=1)

        assert url.startswith(f"https://api.telegram.org/file/bot{bots[0].token}/documents/")

    @pytest.mark.asyncio
    async def test_small_file_without_manifest_gets_url(self, make_transport, bots):
        uploader = make_transport(chunk_size=4)
        result = await uploader.upload(b"abc", "three.bin", bots[0])

        fresh = make_transport(chunk_size=4)

        assert await fresh.get_download_url(result.file_id, bots[0])

    @pytest.mark.asyncio
    async def test_close_releases_client(self, make_transport):
        transport = make_transport()
        await transport.close()
        await transport.close()
