import asyncio
import logging
from typing import Awaitable, Callable

from .backend import AuditLog, MessageBackend
from .jobs import JobStore, UploadJob
from .models import FileReference
from . import utils

logger = logging.getLogger(__name__)


class UploadWorker:
    """
    Single consumer of the upload queue.

    Jobs are sent to Telegram one at a time, in arrival order, with a fixed
    pause after each one (successful or not) to stay under the Bot API's own
    rate limits. Throughput is therefore at most
    ``1 / (backend latency + delay)`` uploads per second; audit lines go out
    in the background and do not count against it.

    A failed upload is logged and dropped: nothing is written to the job store,
    so its job keeps reporting ``Pending``.
    """

    def __init__(
        self,
        queue: "asyncio.Queue[UploadJob]",
        backend: MessageBackend,
        job_store: JobStore,
        delay: float,
        audit: AuditLog | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.queue = queue
        self.backend = backend
        self.job_store = job_store
        self.delay = delay
        self.audit = audit or AuditLog(backend)
        self._sleep = sleep
        self.processed = 0
        self.failed = 0

    async def run(self) -> None:
        logger.info("Upload worker started")
        try:
            while True:
                job = await self.queue.get()
                try:
                    await self.process(job)
                except asyncio.CancelledError:
                    raise
                except Exception:
                    # The loop must outlive any single job.
                    logger.exception(f"Unexpected error in upload worker for job ID {job.job_id}")
                try:
                    await self._sleep(self.delay)
                finally:
                    self.queue.task_done()
        except asyncio.CancelledError:
            logger.info(
                f"Upload worker shutting down ({self.processed} processed, "
                f"{self.failed} failed, {self.queue.qsize()} still queued)"
            )
            raise

    async def process(self, job: UploadJob) -> FileReference | None:
        """Upload one job and record its reference. Returns None on failure."""
        logger.info(f"Processing job ID: {job.job_id}")
        try:
            uploaded = await self.backend.upload_file(job.encrypted_payload, job.generated_filename)
            ref = FileReference(
                backend_handle=uploaded.handle,
                backend_message_id=uploaded.message_id,
                size=job.original_size,
                mime_type=job.mime_type,
            )
            await self.job_store.put(job.job_id, ref)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.failed += 1
            logger.error(f"Failed to process job ID {job.job_id}: {e}", exc_info=True)
            self.audit.send(
                f"❌ Upload Failed | Job ID: {job.job_id} | Error: {type(e).__name__} | IP: {job.client_address}"
            )
            return None

        self.processed += 1
        logger.info(f"Job ID {job.job_id} processed and stored successfully")
        self.audit.send(
            f"✅ Upload Success | Job ID: {job.job_id} | Size: {utils.format_bytes(job.original_size)} "
            f"| Type: {job.mime_type} | IP: {job.client_address}"
        )
        return ref
