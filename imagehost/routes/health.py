import logging
import time

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from ..context import AppContext
from ..errors import BackendError
from ..models import HealthResponse

logger = logging.getLogger(__name__)


class HealthRouter:
    def __init__(self, ctx: AppContext, version: str):
        self.ctx = ctx
        self.VERSION = version

        self.router = APIRouter(tags=["Health"])
        self.router.add_api_route("/health", self.health_check, methods=["GET"], response_model=None)

    async def health_check(self):
        """Healthy only while the Telegram bot answers."""
        try:
            await self.ctx.backend.test_connection()
        except BackendError as e:
            logger.warning(f"Health check failed: {e.detail}")
            return JSONResponse(
                status_code=503,
                content={"status": "unhealthy", "version": self.VERSION, "queued_jobs": self.ctx.queue.qsize()},
            )

        return HealthResponse(
            timestamp=int(time.time()),
            version=self.VERSION,
            queued_jobs=self.ctx.queue.qsize(),
        ).model_dump()
