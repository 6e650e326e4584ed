import asyncio
from dataclasses import dataclass, field

from .models import FileReference


@dataclass(frozen=True)
class UploadJob:
    """An accepted, already-encrypted upload waiting for the worker."""
    job_id: str
    encrypted_payload: bytes = field(repr=False)
    generated_filename: str
    original_size: int
    mime_type: str
    client_address: str


class JobStore:
    """
    In-memory map of finished jobs: job id -> ``FileReference``.

    Only successful uploads are recorded. Absence means "pending" to the
    client, which also covers uploads that failed. Nothing here survives a
    restart.
    """

    def __init__(self):
        self._results: dict[str, FileReference] = {}
        self._lock = asyncio.Lock()

    async def put(self, job_id: str, ref: FileReference) -> None:
        async with self._lock:
            self._results[job_id] = ref

    async def get(self, job_id: str) -> FileReference | None:
        async with self._lock:
            return self._results.get(job_id)


def new_job_queue(capacity: int) -> "asyncio.Queue[UploadJob]":
    """Bounded handoff between request handlers and the worker."""
    return asyncio.Queue(maxsize=capacity)
