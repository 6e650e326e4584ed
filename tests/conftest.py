"""Shared pytest fixtures for all tests."""

import base64
import io
import itertools

import pytest
from PIL import Image, PngImagePlugin

from imagehost.backend import UploadedMessage
from imagehost.config import Config
from imagehost.crypto import CryptoEnvelope
from imagehost.errors import BackendError

TEST_KEY = bytes(range(32))


class FakeBackend:
    """In-memory stand-in for the Telegram backend."""

    def __init__(self, chat_id: int = -100123):
        self.chat_id = chat_id
        self.documents: dict[str, bytes] = {}
        self.messages: dict[int, str] = {}
        self.filenames: list[str] = []
        self.log_lines: list[str] = []
        self.deleted: list[tuple[int, int]] = []
        self.fail_uploads = False
        self.healthy = True
        self.closed = False
        self._ids = itertools.count(1)

    async def upload_file(self, data: bytes, filename: str) -> UploadedMessage:
        if self.fail_uploads:
            raise BackendError("sendDocument failed (HTTP 429): Too Many Requests")
        message_id = next(self._ids)
        handle = f"doc-{message_id}"
        self.documents[handle] = data
        self.messages[message_id] = handle
        self.filenames.append(filename)
        return UploadedMessage(handle=handle, message_id=message_id)

    async def get_file_info(self, handle: str) -> str:
        if handle not in self.documents:
            raise BackendError("getFile failed (HTTP 400): file not found")
        return f"documents/{handle}"

    async def download_file(self, download_path: str) -> bytes:
        return self.documents[download_path.rsplit("/", 1)[-1]]

    async def download_file_by_id(self, handle: str) -> bytes:
        return await self.download_file(await self.get_file_info(handle))

    async def delete_message(self, chat_id: int, message_id: int) -> None:
        if message_id not in self.messages:
            raise BackendError("deleteMessage failed (HTTP 400): message to delete not found")
        handle = self.messages.pop(message_id)
        self.documents.pop(handle, None)
        self.deleted.append((chat_id, message_id))

    async def send_log_message(self, text: str) -> None:
        self.log_lines.append(text)

    async def test_connection(self) -> None:
        if not self.healthy:
            raise BackendError("Bot connection test failed (HTTP 401)")

    async def aclose(self) -> None:
        self.closed = True


def make_png(size: int | None = None, color=(200, 30, 30)) -> bytes:
    """A small valid PNG; padded with a tEXt chunk to exactly *size* bytes if given."""
    buffer = io.BytesIO()
    Image.new("RGB", (8, 8), color).save(buffer, format="PNG")
    data = buffer.getvalue()
    if size is None:
        return data

    # A tEXt chunk costs 12 bytes of framing plus "keyword\0text".
    padding = size - len(data) - 12 - len("pad") - 1
    assert padding >= 0
    info = PngImagePlugin.PngInfo()
    info.add_text("pad", "x" * padding)
    buffer = io.BytesIO()
    Image.new("RGB", (8, 8), color).save(buffer, format="PNG", pnginfo=info)
    data = buffer.getvalue()
    assert len(data) == size
    return data


def make_jpeg() -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (8, 8), (10, 120, 200)).save(buffer, format="JPEG")
    return buffer.getvalue()


@pytest.fixture
def crypto():
    return CryptoEnvelope(TEST_KEY)


@pytest.fixture
def fake_backend():
    return FakeBackend()


@pytest.fixture
def config():
    return Config(
        telegram_bot_token="123456:TEST-token",
        telegram_chat_id=-100123,
        encryption_key=base64.b64encode(TEST_KEY).decode(),
        max_file_size=64 * 1024,
        rate_limit_per_minute=1000,
        admin_secret="correct-horse",
        upload_delay=0,
        queue_capacity=10,
    )


@pytest.fixture
def png_bytes():
    return make_png()
