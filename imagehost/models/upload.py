from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field


class QueuedResponse(BaseModel):
    """Response returned as soon as an upload has been queued."""
    job_id: str = Field(..., description="Identifier to poll for completion")
    status_url: str = Field(..., description="Relative URL of the job status endpoint")


class UploadResponse(BaseModel):
    """Final result of a completed upload."""
    id: str = Field(..., description="Encrypted image token")
    url: str = Field(..., description="Relative URL serving the image")
    size: int = Field(..., description="Image size in bytes")
    mime_type: str = Field(..., description="Image MIME type")


class UrlUpload(BaseModel):
    """Request model for ingesting an image from a remote URL."""
    url: str = Field(..., min_length=1, max_length=2048, description="http(s) URL of the image")


class JobPending(BaseModel):
    status: Literal["Pending"] = "Pending"


class JobCompleted(BaseModel):
    status: Literal["Completed"] = "Completed"
    response: UploadResponse


class JobFailed(BaseModel):
    # Never produced: a failed upload stays Pending from the client's view.
    status: Literal["Failed"] = "Failed"
    error: str


JobStatus = Annotated[Union[JobPending, JobCompleted, JobFailed], Field(discriminator="status")]
