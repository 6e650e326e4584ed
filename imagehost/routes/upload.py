import uuid

from fastapi import APIRouter, File, Request, UploadFile
from fastapi.responses import JSONResponse

from ..context import AppContext
from ..errors import FileTooLarge, InvalidId, ValidationError
from ..models import JobCompleted, JobPending, JobStatus, QueuedResponse, UploadResponse, UrlUpload
from ..rate_limit import get_client_ip


class UploadRouter:
    """Write path: accept uploads, hand them to the pipeline, report job status."""

    def __init__(self, ctx: AppContext):
        self.ctx = ctx
        self.MAX_FILE_SIZE = ctx.config.max_file_size

        self.router = APIRouter(tags=["Upload"])
        self.router.add_api_route("/upload", self.upload, methods=["POST"], status_code=202, response_model=QueuedResponse)
        self.router.add_api_route("/upload_from_url", self.upload_from_url, methods=["POST"], status_code=202, response_model=QueuedResponse)
        self.router.add_api_route("/job/{job_id}", self.job_status, methods=["GET"], response_model=JobStatus)

    def _client_ip(self, request: Request) -> str:
        return get_client_ip(request, self.ctx.config.trust_proxy_headers)

    @staticmethod
    def _queued(job_id: str) -> QueuedResponse:
        return QueuedResponse(job_id=job_id, status_url=f"/job/{job_id}")

    async def upload(
        self,
        request: Request,
        image: UploadFile | None = File(None),
        file: UploadFile | None = File(None),
    ):
        """Queue a multipart upload (field ``image`` or ``file``)."""
        uploaded = image or file
        if uploaded is None:
            raise ValidationError("No image found")

        # Read one byte past the limit so oversize files are caught without reading them whole.
        data = await uploaded.read(self.MAX_FILE_SIZE + 1)
        if len(data) > self.MAX_FILE_SIZE:
            raise FileTooLarge(self.MAX_FILE_SIZE)

        job_id = await self.ctx.pipeline.submit(
            data,
            uploaded.filename,
            uploaded.content_type,
            self._client_ip(request),
        )
        return self._queued(job_id)

    async def upload_from_url(self, payload: UrlUpload, request: Request):
        """Fetch an image from a URL and queue it."""
        job_id = await self.ctx.pipeline.submit_from_url(payload.url.strip(), self._client_ip(request))
        return self._queued(job_id)

    async def job_status(self, job_id: str):
        """Report ``Completed`` with the image token once the worker stored it, else ``Pending``."""
        # Job ids are always issued in canonical lowercase hyphenated form.
        try:
            canonical = str(uuid.UUID(job_id))
        except ValueError:
            raise InvalidId()
        if canonical != job_id:
            raise InvalidId()

        ref = await self.ctx.job_store.get(job_id)
        status: JobStatus
        if ref is None:
            status = JobPending()
        else:
            token = self.ctx.crypto.encode_reference(ref)
            status = JobCompleted(
                response=UploadResponse(
                    id=token,
                    url=f"/image/{token}",
                    size=ref.size,
                    mime_type=ref.mime_type,
                )
            )

        status_code = 200 if isinstance(status, JobCompleted) else 202
        return JSONResponse(status_code=status_code, content=status.model_dump())
