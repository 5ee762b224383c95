"""Shared pytest fixtures for all tests."""

import itertools
from typing import Dict, List, Optional, Tuple

import httpx
import pytest

from botpool.credentials import BotCredential
from botpool.telegram_client import TelegramTransport
from common.constants import TELEGRAM_API_BASE

CHAT_ID = "-1001234567890"

R2_ENV = {
    "R2_ACCOUNT_ID": "acct",
    "R2_ACCESS_KEY_ID": "key-id",
    "R2_SECRET_ACCESS_KEY": "secret",
    "R2_BUCKET_NAME": "bucket",
}

B2_ENV = {
    "B2_ACCOUNT_ID": "acct",
    "B2_APPLICATION_KEY_ID": "key-id",
    "B2_APPLICATION_KEY": "app-key",
    "B2_BUCKET_NAME": "bucket",
}


def parse_multipart(request: httpx.Request) -> Dict[str, bytes]:
    """
    Split a multipart/form-data request body into its named parts.

    Args:
        request: Request captured by httpx.MockTransport

    Returns:
        Mapping of form field name to raw part body
    """
    content_type = request.headers["content-type"]
    boundary = content_type.split("boundary=")[1].encode()
    parts = {}
    for section in request.content.split(b"--" + boundary):
        if b'name="' not in section:
            continue
        headers, _, body = section.partition(b"\r\n\r\n")
        name = headers.split(b'name="')[1].split(b'"')[0].decode()
        if body.endswith(b"\r\n"):
            body = body[:-2]
        parts[name] = body
    return parts


class FakeBotApi:
    """
    In-memory stand-in for the Telegram Bot API.

    Documents are kept per bot token, so a file can only be fetched through
    the bot that posted it. Scripted failures are served before the normal
    behaviour for the matching token and method.
    """

    def __init__(self):
        self.documents: Dict[str, Tuple[str, str, bytes]] = {}
        self.paths: Dict[str, str] = {}
        self.captions: List[str] = []
        self.calls: List[Tuple[str, str]] = []
        self._failures: Dict[Tuple[str, str], List[httpx.Response]] = {}
        self._ids = itertools.count(1)

    def fail(self, token: str, method: str, response: httpx.Response, times: int = 1):
        """Queue a canned response for the next ``times`` calls of ``method`` by ``token``."""
        self._failures.setdefault((token, method), []).extend([response] * times)

    def fail_always(self, token: str, method: str, response: httpx.Response):
        self.fail(token, method, response, times=1000)

    def count(self, method: str, token: Optional[str] = None) -> int:
        return sum(1 for m, t in self.calls if m == method and (token is None or t == token))

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path.startswith("/file/bot"):
            token, _, file_path = path[len("/file/bot"):].partition("/")
            method = "file"
        else:
            token, _, method = path[len("/bot"):].partition("/")

        self.calls.append((method, token))

        queued = self._failures.get((token, method))
        if queued:
            canned = queued.pop(0)
            return httpx.Response(canned.status_code, headers=canned.headers, content=canned.content)

        if method == "sendDocument":
            return self._send_document(token, request)
        if method == "getFile":
            return self._get_file(token, request.url.params.get("file_id"))
        if method == "file":
            return self._file(token, file_path)
        return httpx.Response(404, json={"ok": False, "error_code": 404, "description": "Not Found"})

    def _send_document(self, token: str, request: httpx.Request) -> httpx.Response:
        parts = parse_multipart(request)
        if not parts.get("document"):
            return httpx.Response(400, json={
                "ok": False, "error_code": 400, "description": "Bad Request: file must be non-empty"
            })
        number = next(self._ids)
        file_id = f"BQACAgIAAx{number:04d}"
        file_path = f"documents/file_{number}.bin"
        self.documents[file_id] = (token, file_path, parts["document"])
        self.paths[file_path] = file_id
        self.captions.append(parts.get("caption", b"").decode())
        return httpx.Response(200, json={
            "ok": True,
            "result": {
                "message_id": number,
                "chat": {"id": int(parts["chat_id"])},
                "document": {"file_id": file_id, "file_size": len(parts["document"])},
            },
        })

    def _get_file(self, token: str, file_id: Optional[str]) -> httpx.Response:
        stored = self.documents.get(file_id)
        if stored is None or stored[0] != token:
            return httpx.Response(400, json={
                "ok": False, "error_code": 400, "description": "Bad Request: wrong file_id"
            })
        return httpx.Response(200, json={
            "ok": True,
            "result": {"file_id": file_id, "file_size": len(stored[2]), "file_path": stored[1]},
        })

    def _file(self, token: str, file_path: str) -> httpx.Response:
        file_id = self.paths.get(file_path)
        if file_id is None or self.documents[file_id][0] != token:
            return httpx.Response(404, json={"ok": False, "error_code": 404, "description": "Not Found"})
        return httpx.Response(200, content=self.documents[file_id][2])


def rate_limited(retry_after: int = 7) -> httpx.Response:
    return httpx.Response(429, json={
        "ok": False,
        "error_code": 429,
        "description": f"Too Many Requests: retry after {retry_after}",
        "parameters": {"retry_after": retry_after},
    })


def server_error() -> httpx.Response:
    return httpx.Response(502, json={"ok": False, "error_code": 502, "description": "Bad Gateway"})


def unauthorized() -> httpx.Response:
    return httpx.Response(401, json={"ok": False, "error_code": 401, "description": "Unauthorized"})


@pytest.fixture
def bots():
    """Three bots sharing one storage chat."""
    return [
        BotCredential(bot_id=f"bot-{i}", name=f"Bot {i}", token=f"10000{i}:AAH-secret-token-{i}", chat_id=CHAT_ID)
        for i in range(1, 4)
    ]


@pytest.fixture
def fake_api():
    return FakeBotApi()


@pytest.fixture
def sleeps():
    """Delays requested by the retry executor, in order."""
    return []


@pytest.fixture
def fake_sleep(sleeps):
    async def _sleep(delay):
        sleeps.append(delay)
    return _sleep


@pytest.fixture
def make_transport(fake_api, fake_sleep):
    """
    Factory for TelegramTransport instances wired to the fake Bot API.

    Returns:
        Callable accepting TelegramTransport keyword overrides
    """
    def _make(**kwargs):
        client = httpx.AsyncClient(transport=httpx.MockTransport(fake_api.handler))
        kwargs.setdefault("sleep", fake_sleep)
        kwargs.setdefault("api_base", TELEGRAM_API_BASE)
        return TelegramTransport(client=client, **kwargs)
    return _make


@pytest.fixture
def clock():
    """Manually advanced time source."""
    class Clock:
        def __init__(self):
            self.now = 1_000_000.0

        def __call__(self):
            return self.now

        def advance(self, seconds):
            self.now += seconds

    return Clock()
