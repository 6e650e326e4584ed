from .file import FileReference, NONCE_SIZE
from .upload import QueuedResponse, UploadResponse, UrlUpload, JobPending, JobCompleted, JobFailed, JobStatus
from .admin import AdminDelete, HealthResponse

__all__ = [
    # File
    "FileReference",
    "NONCE_SIZE",
    # Upload
    "QueuedResponse",
    "UploadResponse",
    "UrlUpload",
    "JobPending",
    "JobCompleted",
    "JobFailed",
    "JobStatus",
    # Admin
    "AdminDelete",
    "HealthResponse",
]
