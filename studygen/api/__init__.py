"""FastAPI application for the studygen API."""

from studygen.api.app import create_app
from studygen.api.validation import ErrorResponse, GenerateRequest, HealthResponse

__all__ = [
    "create_app",
    "ErrorResponse",
    "GenerateRequest",
    "HealthResponse",
]
