"""
Upload ingestion: validate, encrypt, queue.

Handlers hand raw bytes to ``UploadPipeline.submit``; the Telegram upload
itself happens later in the worker. When the queue is full ``submit`` waits
for room rather than failing, so a slow backend slows down accepted uploads
instead of dropping them.
"""

import asyncio
import io
import logging
import mimetypes
import struct
import uuid
from urllib.parse import urlparse

import httpx
from PIL import Image, UnidentifiedImageError

from . import utils
from .crypto import CryptoEnvelope
from .errors import FileTooLarge, InvalidFileFormat, ValidationError
from .jobs import UploadJob

logger = logging.getLogger(__name__)

OCTET_STREAM = "application/octet-stream"
FETCH_CHUNK_SIZE = 64 * 1024

# Missing from the mimetypes table on older interpreters.
mimetypes.add_type("image/webp", ".webp")


def resolve_mime_type(declared_mime: str | None, filename: str | None) -> str:
    """Explicit content type first, then the filename extension, then binary.

    A declared ``application/octet-stream`` is what most clients send when
    they don't know, so it doesn't count as explicit.
    """
    if declared_mime:
        mime = declared_mime.split(";", 1)[0].strip().lower()
        if mime and mime != OCTET_STREAM:
            return mime
    if filename:
        guessed, _ = mimetypes.guess_type(filename, strict=False)
        if guessed:
            return guessed
    return OCTET_STREAM


def verify_image(data: bytes) -> str:
    """Check that *data* fully decodes as an image Pillow knows. Returns its format.

    ``verify()`` only checks structure (PNG chunk CRCs, for instance), so the
    pixel data is decoded too. Pillow needs a fresh handle after ``verify()``.
    """
    try:
        with Image.open(io.BytesIO(data)) as image:
            image_format = image.format
            image.verify()
        with Image.open(io.BytesIO(data)) as image:
            image.load()
    except (UnidentifiedImageError, OSError, EOFError, SyntaxError, ValueError, struct.error,
            Image.DecompressionBombError) as e:
        raise InvalidFileFormat(f"Invalid image data: {e}")
    return image_format or "unknown"


class UploadPipeline:
    def __init__(
        self,
        crypto: CryptoEnvelope,
        queue: "asyncio.Queue[UploadJob]",
        max_file_size: int,
        allowed_types: list[str],
        http_client: httpx.AsyncClient | None = None,
    ):
        self.crypto = crypto
        self.queue = queue
        self.max_file_size = max_file_size
        self.allowed_types = [t.lower() for t in allowed_types]
        self._http = http_client

    def validate(self, raw_bytes: bytes, filename: str | None, declared_mime: str | None) -> str:
        """Run every upload check and return the effective MIME type."""
        if len(raw_bytes) > self.max_file_size:
            raise FileTooLarge(self.max_file_size)

        mime_type = resolve_mime_type(declared_mime, filename)
        if mime_type not in self.allowed_types:
            raise InvalidFileFormat(
                f"Unsupported type: {mime_type}. Allowed: {', '.join(self.allowed_types)}"
            )

        verify_image(raw_bytes)
        return mime_type

    async def submit(
        self,
        raw_bytes: bytes,
        filename: str | None,
        declared_mime: str | None,
        client_address: str = "unknown",
    ) -> str:
        """Validate and encrypt an upload, queue it, and return its job id.

        Suspends while the queue is full.
        """
        if not raw_bytes:
            raise ValidationError("No image found")

        mime_type = self.validate(raw_bytes, filename, declared_mime)

        job = UploadJob(
            job_id=str(uuid.uuid4()),
            encrypted_payload=self.crypto.encrypt_bytes(raw_bytes),
            generated_filename=utils.storage_filename(filename),
            original_size=len(raw_bytes),
            mime_type=mime_type,
            client_address=client_address,
        )

        if self.queue.full():
            logger.info(f"Upload queue full, job {job.job_id} waiting for the worker")
        await self.queue.put(job)

        logger.info(
            f"Queued job ID: {job.job_id} for IP: {client_address}. "
            f"Size: {utils.format_bytes(job.original_size)}, Type: {mime_type}"
        )
        return job.job_id

    async def submit_from_url(self, url: str, client_address: str = "unknown") -> str:
        """Download an image from *url* and submit it like a direct upload."""
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValidationError("Only http and https URLs are supported")
        if self._http is None:
            raise ValidationError("URL uploads are not available")

        data, content_type = await self._fetch(url)

        declared = None
        if content_type and content_type.split(";", 1)[0].strip().lower().startswith("image/"):
            declared = content_type

        # Without an image Content-Type the URL extension decides the type.
        if declared is None:
            declared = resolve_mime_type(None, parsed.path)

        filename = utils.filename_from_url(url)

        logger.info(f"Fetched {utils.format_bytes(len(data))} from URL for IP: {client_address}")
        return await self.submit(data, filename, declared, client_address)

    async def _fetch(self, url: str) -> tuple[bytes, str | None]:
        """Stream *url* into memory, stopping as soon as it exceeds the size limit."""
        try:
            async with self._http.stream("GET", url, follow_redirects=True) as response:
                if not response.is_success:
                    raise ValidationError(
                        f"Failed to download image: status code {response.status_code}"
                    )

                declared_length = response.headers.get("content-length")
                if declared_length and declared_length.isdigit() and int(declared_length) > self.max_file_size:
                    raise FileTooLarge(self.max_file_size)

                buffer = bytearray()
                async for chunk in response.aiter_bytes(FETCH_CHUNK_SIZE):
                    buffer.extend(chunk)
                    if len(buffer) > self.max_file_size:
                        raise FileTooLarge(self.max_file_size)
                return bytes(buffer), response.headers.get("content-type")
        except httpx.HTTPError as e:
            raise ValidationError(f"Failed to download image from URL: {type(e).__name__}")
