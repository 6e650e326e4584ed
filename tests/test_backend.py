"""Tests for the Telegram Bot API client."""

import json

import httpx
import pytest

from imagehost.backend import TelegramBackend, send_audit
from imagehost.errors import BackendError

TOKEN = "123456:TEST-token"
API = "https://api.telegram.test"


def make_backend(handler, log_chat_id=None) -> TelegramBackend:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return TelegramBackend(TOKEN, -100123, log_chat_id=log_chat_id, client=client, api_url=API)


def ok(result) -> httpx.Response:
    return httpx.Response(200, json={"ok": True, "result": result})


@pytest.mark.asyncio
async def test_upload_file_sends_document():
    """Test sendDocument is posted as multipart and the ids are extracted."""
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["body"] = request.read()
        return ok({"message_id": 42, "document": {"file_id": "BQACAgQ", "file_size": 40}})

    backend = make_backend(handler)
    uploaded = await backend.upload_file(b"encrypted-bytes", "abc_cat.png")
    await backend.aclose()

    assert seen["url"] == f"{API}/bot{TOKEN}/sendDocument"
    assert b"encrypted-bytes" in seen["body"]
    assert b'filename="abc_cat.png"' in seen["body"]
    assert b"-100123" in seen["body"]
    assert uploaded.handle == "BQACAgQ"
    assert uploaded.message_id == 42


@pytest.mark.asyncio
@pytest.mark.parametrize("result", [
    {"message_id": 42},
    {"message_id": 42, "document": {}},
    {"document": {"file_id": "BQACAgQ"}},
])
async def test_upload_file_incomplete_result(result):
    """Test a result without document or message id is a backend error."""
    backend = make_backend(lambda request: ok(result))

    with pytest.raises(BackendError):
        await backend.upload_file(b"x", "a.png")


@pytest.mark.asyncio
async def test_api_error_envelope():
    """Test ok=false answers raise with Telegram's description kept server-side."""
    def handler(request):
        return httpx.Response(400, json={"ok": False, "error_code": 400, "description": "Bad Request: chat not found"})

    backend = make_backend(handler)

    with pytest.raises(BackendError) as exc_info:
        await backend.upload_file(b"x", "a.png")

    assert "chat not found" in exc_info.value.detail
    assert exc_info.value.client_message == "External service error"
    assert exc_info.value.status_code == 503


@pytest.mark.asyncio
async def test_non_json_response():
    """Test a non-JSON body is a backend error."""
    backend = make_backend(lambda request: httpx.Response(502, text="<html>Bad Gateway</html>"))

    with pytest.raises(BackendError):
        await backend.get_file_info("BQACAgQ")


@pytest.mark.asyncio
async def test_transport_error():
    """Test connection failures become backend errors."""
    def handler(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    backend = make_backend(handler)

    with pytest.raises(BackendError):
        await backend.delete_message(-100123, 7)


@pytest.mark.asyncio
async def test_download_file_by_id():
    """Test getFile is resolved and the file path downloaded."""
    def handler(request):
        if request.url.path.endswith("/getFile"):
            assert b"file_id=BQACAgQ" in request.read()
            return ok({"file_id": "BQACAgQ", "file_path": "documents/file_7.bin"})
        assert str(request.url) == f"{API}/file/bot{TOKEN}/documents/file_7.bin"
        return httpx.Response(200, content=b"ciphertext")

    backend = make_backend(handler)

    assert await backend.download_file_by_id("BQACAgQ") == b"ciphertext"


@pytest.mark.asyncio
async def test_get_file_info_without_path():
    """Test a getFile result missing file_path is rejected."""
    backend = make_backend(lambda request: ok({"file_id": "BQACAgQ"}))

    with pytest.raises(BackendError):
        await backend.get_file_info("BQACAgQ")


@pytest.mark.asyncio
async def test_download_failure():
    """Test a failed file download is a backend error."""
    backend = make_backend(lambda request: httpx.Response(404))

    with pytest.raises(BackendError):
        await backend.download_file("documents/missing.bin")


@pytest.mark.asyncio
async def test_delete_message():
    """Test deleteMessage carries the chat and message ids."""
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["body"] = request.read().decode()
        return ok(True)

    backend = make_backend(handler)
    await backend.delete_message(-100123, 77)

    assert seen["path"].endswith("/deleteMessage")
    assert "chat_id=-100123" in seen["body"]
    assert "message_id=77" in seen["body"]


@pytest.mark.asyncio
async def test_send_log_message_without_log_chat():
    """Test audit lines are skipped when no log chat is configured."""
    def handler(request):
        raise AssertionError("no request expected")

    backend = make_backend(handler)

    await backend.send_log_message("hello")


@pytest.mark.asyncio
async def test_send_log_message():
    """Test audit lines go to the log chat."""
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["body"] = request.read().decode()
        return ok({"message_id": 1})

    backend = make_backend(handler, log_chat_id=-100999)
    await backend.send_log_message("Upload Success")

    assert seen["path"].endswith("/sendMessage")
    assert "chat_id=-100999" in seen["body"]
    assert "Upload+Success" in seen["body"]


@pytest.mark.asyncio
async def test_send_audit_swallows_backend_errors():
    """Test audit failures are logged, not raised."""
    backend = make_backend(lambda request: httpx.Response(403, json={"ok": False, "description": "Forbidden"}),
                           log_chat_id=-100999)

    await send_audit(backend, "line")


@pytest.mark.asyncio
async def test_connection():
    """Test getMe is used as the connectivity probe."""
    def handler(request):
        assert request.url.path == f"/bot{TOKEN}/getMe"
        return httpx.Response(200, content=json.dumps({"ok": True, "result": {"id": 1, "is_bot": True}}))

    backend = make_backend(handler)

    await backend.test_connection()


@pytest.mark.asyncio
async def test_connection_unauthorized():
    """Test a rejected bot token fails the probe."""
    backend = make_backend(lambda request: httpx.Response(401, json={"ok": False, "description": "Unauthorized"}))

    with pytest.raises(BackendError):
        await backend.test_connection()
