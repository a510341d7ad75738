"""Request and response schemas for the studygen API."""

from typing import Any

from pydantic import BaseModel, Field


class GenerateRequest(BaseModel):
    """Request schema for POST /generate.

    ``topic`` is typed loosely so that a missing or non-string topic reaches
    the orchestrator and gets the 400 response clients expect, not a 422.
    """

    topic: Any = Field(None, description="Study topic")


class HealthResponse(BaseModel):
    """Response schema for health endpoints."""

    status: str = Field(..., description="Health status (healthy, unhealthy)")
    timestamp: str = Field(..., description="ISO timestamp")
    checks: dict[str, Any] | None = Field(None, description="Component checks")


class ErrorResponse(BaseModel):
    """Error response schema."""

    error: str = Field(..., description="Error message")
    detail: str | None = Field(None, description="Error details")
    code: str | None = Field(None, description="Error code")
