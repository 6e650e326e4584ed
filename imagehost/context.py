import asyncio
from dataclasses import dataclass

import httpx

from .backend import AuditLog, MessageBackend, TelegramBackend
from .config import Config
from .crypto import CryptoEnvelope
from .jobs import JobStore, UploadJob, new_job_queue
from .pipeline import UploadPipeline
from .rate_limit import RateLimiter
from .worker import UploadWorker


@dataclass
class AppContext:
    """Everything the handlers and the worker share, built once per app."""
    config: Config
    crypto: CryptoEnvelope
    backend: MessageBackend
    audit: AuditLog
    job_store: JobStore
    queue: "asyncio.Queue[UploadJob]"
    pipeline: UploadPipeline
    worker: UploadWorker
    rate_limiter: RateLimiter
    http_client: httpx.AsyncClient

    @classmethod
    def build(
        cls,
        config: Config,
        backend: MessageBackend | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> "AppContext":
        crypto = CryptoEnvelope(config.encryption_key_bytes)
        http_client = http_client or httpx.AsyncClient(timeout=config.backend_timeout)
        if backend is None:
            backend = TelegramBackend(
                bot_token=config.telegram_bot_token,
                chat_id=config.telegram_chat_id,
                log_chat_id=config.telegram_log_chat_id,
                timeout=config.backend_timeout,
            )

        job_store = JobStore()
        queue = new_job_queue(config.queue_capacity)
        pipeline = UploadPipeline(
            crypto=crypto,
            queue=queue,
            max_file_size=config.max_file_size,
            allowed_types=config.allowed_image_types,
            http_client=http_client,
        )
        audit = AuditLog(backend)
        worker = UploadWorker(
            queue=queue, backend=backend, job_store=job_store, delay=config.upload_delay, audit=audit
        )

        return cls(
            config=config,
            crypto=crypto,
            backend=backend,
            audit=audit,
            job_store=job_store,
            queue=queue,
            pipeline=pipeline,
            worker=worker,
            rate_limiter=RateLimiter(config.rate_limit_per_minute),
            http_client=http_client,
        )

    async def aclose(self) -> None:
        await self.audit.drain()
        await self.http_client.aclose()
        await self.backend.aclose()
