"""Caller identity, as asserted by the upstream auth layer.

Sign-in and token verification happen in front of this service (gateway or
auth proxy). That layer forwards the authenticated user id in a trusted
header (``settings.identity_header``, default ``X-User-Id``). Requests
without the header are anonymous: they can generate and read study sets,
but have no history.
"""

from collections.abc import Awaitable, Callable
from typing import Any

from fastapi import HTTPException, Request, Response, status
from starlette.middleware.base import BaseHTTPMiddleware

from studygen.core.config import settings

MAX_USER_ID_LENGTH = 128


class IdentityMiddleware(BaseHTTPMiddleware):
    """Copy the forwarded user id into ``request.state.user_id``."""

    def __init__(self, app: Callable[..., Any], header_name: str | None = None):
        super().__init__(app)
        self.header_name = header_name or settings.identity_header

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        raw = request.headers.get(self.header_name, "").strip()
        request.state.user_id = raw[:MAX_USER_ID_LENGTH] or None
        return await call_next(request)


def optional_user(request: Request) -> str | None:
    """Dependency: authenticated user id or None."""
    return getattr(request.state, "user_id", None)


def required_user(request: Request) -> str:
    """Dependency: authenticated user id, 401 if anonymous."""
    user_id = optional_user(request)
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )
    return user_id
