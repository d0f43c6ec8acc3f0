"""Common schemas used across the API."""

from pydantic import BaseModel


class SuccessResponse(BaseModel):
    """Generic success response."""

    success: bool = True
    message: str | None = None


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "healthy"
    version: str
    queue_running: bool = False
    scheduled_workflows: int = 0


class RootResponse(BaseModel):
    """Root endpoint response."""

    name: str
    version: str
    status: str
