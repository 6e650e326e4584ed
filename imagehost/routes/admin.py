import hashlib
import logging
import secrets

import bcrypt
from fastapi import APIRouter, Request

from ..context import AppContext
from ..errors import ConfigError, Unauthorized
from ..models import AdminDelete
from ..rate_limit import get_client_ip

logger = logging.getLogger(__name__)


def verify_admin_secret(candidate: str, admin_secret: str) -> bool:
    """Check *candidate* against the configured admin secret.

    The secret may be stored as ``sha256:<hex>``, as a bcrypt hash, or in
    plain text. An empty secret disables admin access entirely.
    """
    if not admin_secret or not candidate:
        return False
    if admin_secret.startswith("sha256:"):
        input_hash = hashlib.sha256(candidate.encode("utf-8")).hexdigest()
        return secrets.compare_digest(input_hash, admin_secret.split(":", 1)[1].lower())
    elif admin_secret.startswith(("$2a$", "$2b$", "$2y$")):
        try:
            return bcrypt.checkpw(candidate.encode("utf-8"), admin_secret.encode("utf-8"))
        except ValueError:
            raise ConfigError("Invalid bcrypt hash in ADMIN_SECRET")
    return secrets.compare_digest(candidate.encode("utf-8"), admin_secret.encode("utf-8"))


class AdminRouter:
    def __init__(self, ctx: AppContext):
        self.ctx = ctx

        self.router = APIRouter(prefix="/admin", tags=["Admin"])
        self.router.add_api_route("/image/{image_id}", self.delete_image, methods=["DELETE"])

    async def delete_image(self, image_id: str, payload: AdminDelete, request: Request):
        """Delete the Telegram message behind an image token."""
        client_ip = get_client_ip(request, self.ctx.config.trust_proxy_headers)

        if not self.ctx.config.admin_enabled:
            logger.warning(f"Delete attempt for image {image_id} from IP: {client_ip} while ADMIN_SECRET is unset")
            raise Unauthorized("Admin access is disabled")

        if not verify_admin_secret(payload.api_key, self.ctx.config.admin_secret):
            logger.warning(f"Unauthorized attempt to delete image: {image_id} from IP: {client_ip}")
            self.ctx.audit.send(
                f"Unauthorized delete attempt for image ID: {image_id} from IP: {client_ip}",
            )
            raise Unauthorized()

        ref = self.ctx.crypto.decode_reference(image_id)
        logger.info(f"Attempting to delete image with ID: {image_id} from IP: {client_ip}")

        try:
            await self.ctx.backend.delete_message(self.ctx.backend.chat_id, ref.backend_message_id)
        except Exception as e:
            self.ctx.audit.send(
                f"Failed to delete image {image_id}: {type(e).__name__} by IP: {client_ip}",
            )
            raise

        logger.info(f"Successfully deleted image with ID: {image_id} from IP: {client_ip}")
        self.ctx.audit.send(f"Image deleted: {image_id} by IP: {client_ip}")
        return {"deleted": True, "id": image_id}
