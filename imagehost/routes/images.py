import logging

from fastapi import APIRouter, Request, Response

from ..context import AppContext
from ..crypto import hash_data
from ..errors import InternalError
from ..rate_limit import get_client_ip

logger = logging.getLogger(__name__)

CACHE_CONTROL = "public, max-age=3600"


def make_etag(data: bytes) -> str:
    """Quoted hex of the first 8 bytes of SHA-256(data)."""
    return f'"{hash_data(data)[:8].hex()}"'


class ImageRouter:
    """Read path: every lookup starts by decrypting the token in the URL."""

    def __init__(self, ctx: AppContext):
        self.ctx = ctx

        self.router = APIRouter(tags=["Images"])
        self.router.add_api_route("/image/{image_id}", self.get_image, methods=["GET"], response_class=Response)
        self.router.add_api_route("/info/{image_id}", self.get_image_info, methods=["GET"])

    async def get_image(self, image_id: str, request: Request):
        """Serve the decrypted image bytes."""
        ref = self.ctx.crypto.decode_reference(image_id)

        encrypted = await self.ctx.backend.download_file_by_id(ref.backend_handle)
        image_data = self.ctx.crypto.decrypt_bytes(encrypted)

        if len(image_data) != ref.size:
            raise InternalError(
                f"Decrypted file size mismatch: expected {ref.size}, got {len(image_data)}"
            )

        etag = make_etag(image_data)
        headers = {
            "Cache-Control": CACHE_CONTROL,
            "ETag": etag,
        }

        client_ip = get_client_ip(request, self.ctx.config.trust_proxy_headers)
        if request.headers.get("if-none-match") == etag:
            return Response(status_code=304, headers=headers)

        logger.info(f"Image served successfully: {len(image_data)} bytes, type: {ref.mime_type}")
        self.ctx.audit.send(
            f"Image retrieved: ID={image_id}, Size={len(image_data)}, Type={ref.mime_type}, IP={client_ip}",
        )

        # Response sets Content-Length from the body.
        return Response(content=image_data, media_type=ref.mime_type, headers=headers)

    async def get_image_info(self, image_id: str, request: Request):
        """Metadata straight from the token; the backend is not contacted."""
        ref = self.ctx.crypto.decode_reference(image_id)

        client_ip = get_client_ip(request, self.ctx.config.trust_proxy_headers)
        self.ctx.audit.send(
            f"Image info retrieved: ID={image_id}, Size={ref.size}, Type={ref.mime_type}, IP={client_ip}",
        )

        return {
            "size": ref.size,
            "mime_type": ref.mime_type,
            "id": image_id,
        }
