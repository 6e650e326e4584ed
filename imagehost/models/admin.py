from pydantic import BaseModel, Field


class AdminDelete(BaseModel):
    """Request model for deleting a stored image."""
    api_key: str = Field(..., max_length=256, description="Admin secret")


class HealthResponse(BaseModel):
    """Health check payload."""
    status: str = "healthy"
    timestamp: int
    version: str
    queued_jobs: int = 0
