"""Common schemas used by the probe endpoints."""

from typing import Dict

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Response model for errors."""
    detail: str
    code: str


class HealthResponse(BaseModel):
    """Response model for the liveness probe."""
    status: str
    service: str


class ReadinessResponse(BaseModel):
    """Response model for the readiness probe."""
    ready: bool
    checks: Dict[str, str]
