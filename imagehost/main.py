import asyncio
import logging
import time
import uuid
from contextlib import asynccontextmanager

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from . import utils
from .backend import MessageBackend
from .config import Config
from .context import AppContext
from .errors import FileTooLarge, error_response, register_exception_handlers
from .logging_config import setup_logging
from .rate_limit import RateLimitMiddleware
from .routes.admin import AdminRouter
from .routes.health import HealthRouter
from .routes.images import ImageRouter
from .routes.upload import UploadRouter

VERSION = "1.0.0"
# Room for multipart boundaries and headers on top of the file itself.
MULTIPART_OVERHEAD = 64 * 1024

logger = logging.getLogger(__name__)


def create_app(
    config: Config | None = None,
    backend: MessageBackend | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> FastAPI:
    """Build the application and its context.

    Without arguments the configuration comes from the environment and the
    backend is the Telegram Bot API. *http_client* is used for URL uploads.
    """
    if config is None:
        config = Config.from_env()
        setup_logging("imagehost", config.log_level)
    ctx = AppContext.build(config, backend=backend, http_client=http_client)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Single consumer for the upload queue
        worker_task = asyncio.create_task(ctx.worker.run(), name="upload-worker")
        logger.info(
            f"Service started: max file size {utils.format_bytes(config.max_file_size)}, "
            f"{config.rate_limit_per_minute} req/min per IP, upload delay {config.upload_delay}s"
        )

        yield

        # Cancel worker on shutdown; queued jobs are lost
        worker_task.cancel()
        try:
            await worker_task
        except asyncio.CancelledError:
            pass
        await ctx.aclose()

    app = FastAPI(title="Image Host API", version=VERSION, lifespan=lifespan)
    app.state.ctx = ctx

    max_body = config.max_file_size + MULTIPART_OVERHEAD

    @app.middleware("http")
    async def limit_body_size(request: Request, call_next):
        content_length = request.headers.get("content-length")
        if content_length and content_length.isdigit() and int(content_length) > max_body:
            exc = FileTooLarge(config.max_file_size)
            return error_response(exc.status_code, exc.client_message)
        return await call_next(request)

    app.add_middleware(RateLimitMiddleware, limiter=ctx.rate_limiter, trust_proxy_headers=config.trust_proxy_headers)
    app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_credentials=False, allow_methods=["*"], allow_headers=["*"])

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id
        start_time = time.time()

        response = await call_next(request)

        duration = time.time() - start_time
        logger.info(
            f"{request.method} {request.url.path} status={response.status_code} "
            f"duration={duration:.3f}s [request_id={request_id}]"
        )
        response.headers["X-Request-ID"] = request_id
        return response

    register_exception_handlers(app)

    # Include routers
    app.include_router(UploadRouter(ctx).router)
    app.include_router(ImageRouter(ctx).router)
    app.include_router(AdminRouter(ctx).router)
    app.include_router(HealthRouter(ctx, VERSION).router)

    return app


def main() -> None:
    """Run the service with uvicorn on ``BIND_ADDRESS``."""
    app = create_app()
    config: Config = app.state.ctx.config
    host, port = utils.parse_bind_address(config.bind_address)
    uvicorn.run(app, host=host, port=port, log_level=config.log_level.lower())


if __name__ == "__main__":
    main()
