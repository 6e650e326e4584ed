"""
Telegram Bot API client used as a blob store.

Encrypted images are sent as documents to a private chat; the document's
``file_id`` and the carrying ``message_id`` are all that is needed to fetch or
delete them later.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from .errors import BackendError

logger = logging.getLogger(__name__)

TELEGRAM_API_URL = "https://api.telegram.org"


@dataclass(frozen=True)
class UploadedMessage:
    handle: str
    message_id: int


class MessageBackend(Protocol):
    """What the image host needs from a message store."""

    chat_id: int

    async def upload_file(self, data: bytes, filename: str) -> UploadedMessage: ...

    async def get_file_info(self, handle: str) -> str: ...

    async def download_file(self, download_path: str) -> bytes: ...

    async def download_file_by_id(self, handle: str) -> bytes: ...

    async def delete_message(self, chat_id: int, message_id: int) -> None: ...

    async def send_log_message(self, text: str) -> None: ...

    async def test_connection(self) -> None: ...

    async def aclose(self) -> None: ...


class TelegramBackend:
    def __init__(
        self,
        bot_token: str,
        chat_id: int,
        log_chat_id: int | None = None,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
        api_url: str = TELEGRAM_API_URL,
    ):
        self.chat_id = chat_id
        self.log_chat_id = log_chat_id
        self._base_url = f"{api_url}/bot{bot_token}"
        self._file_url = f"{api_url}/file/bot{bot_token}"
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def _call(self, method: str, **kwargs) -> Any:
        """POST a Bot API method and unwrap the ``{ok, result, description}`` envelope."""
        try:
            response = await self._client.post(f"{self._base_url}/{method}", **kwargs)
        except httpx.HTTPError as e:
            raise BackendError(f"{method} request failed: {type(e).__name__}")

        try:
            payload = response.json()
        except ValueError:
            raise BackendError(f"{method} returned non-JSON response (HTTP {response.status_code})")

        if not response.is_success or not isinstance(payload, dict) or not payload.get("ok"):
            description = payload.get("description") if isinstance(payload, dict) else None
            raise BackendError(
                f"{method} failed (HTTP {response.status_code}): {description or 'no description'}"
            )

        if "result" not in payload:
            raise BackendError(f"{method} returned no result")
        return payload["result"]

    async def upload_file(self, data: bytes, filename: str) -> UploadedMessage:
        """Send *data* as a document and return where Telegram stored it."""
        message = await self._call(
            "sendDocument",
            data={"chat_id": str(self.chat_id)},
            files={"document": (filename, data, "application/octet-stream")},
        )
        document = message.get("document") if isinstance(message, dict) else None
        if not document or "file_id" not in document:
            raise BackendError("No document in sendDocument response")
        if not isinstance(message.get("message_id"), int):
            raise BackendError("No message_id in sendDocument response")
        return UploadedMessage(handle=document["file_id"], message_id=message["message_id"])

    async def get_file_info(self, handle: str) -> str:
        """Resolve a ``file_id`` to its temporary download path."""
        file_info = await self._call("getFile", data={"file_id": handle})
        file_path = file_info.get("file_path") if isinstance(file_info, dict) else None
        if not file_path:
            raise BackendError("No file path in getFile response")
        return file_path

    async def download_file(self, download_path: str) -> bytes:
        try:
            response = await self._client.get(f"{self._file_url}/{download_path}")
        except httpx.HTTPError as e:
            raise BackendError(f"File download failed: {type(e).__name__}")
        if not response.is_success:
            raise BackendError(f"File download failed (HTTP {response.status_code})")
        return response.content

    async def download_file_by_id(self, handle: str) -> bytes:
        return await self.download_file(await self.get_file_info(handle))

    async def delete_message(self, chat_id: int, message_id: int) -> None:
        await self._call(
            "deleteMessage",
            data={"chat_id": str(chat_id), "message_id": str(message_id)},
        )

    async def send_log_message(self, text: str) -> None:
        """Post an audit line to the log chat, if one is configured."""
        if self.log_chat_id is None:
            return
        await self._call(
            "sendMessage",
            data={"chat_id": str(self.log_chat_id), "text": text},
        )

    async def test_connection(self) -> None:
        try:
            response = await self._client.get(f"{self._base_url}/getMe")
        except httpx.HTTPError as e:
            raise BackendError(f"Bot connection test failed: {type(e).__name__}")
        if not response.is_success:
            raise BackendError(f"Bot connection test failed (HTTP {response.status_code})")

    async def aclose(self) -> None:
        await self._client.aclose()


async def send_audit(backend: MessageBackend, text: str) -> None:
    """Send one audit line; backend failures are logged, never raised."""
    try:
        await backend.send_log_message(text)
    except BackendError as e:
        logger.warning(f"Failed to send log message: {e.detail}")


class AuditLog:
    """
    Fire-and-forget audit lines.

    ``send`` schedules the Telegram call as a task and returns at once, so the
    worker and the read path never wait on the log chat. Running tasks are
    kept referenced until they finish; ``drain`` waits for them at shutdown.
    """

    def __init__(self, backend: MessageBackend):
        self.backend = backend
        self._tasks: set[asyncio.Task] = set()

    def send(self, text: str) -> None:
        task = asyncio.create_task(send_audit(self.backend, text))
        self._tasks.add(task)
        task.add_done_callback(self._on_done)

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning(f"Audit task failed: {type(exc).__name__}: {exc}")

    async def drain(self) -> None:
        """Wait for every audit line already scheduled."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
