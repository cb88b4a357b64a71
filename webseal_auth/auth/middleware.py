"""Authentication middleware for Starlette applications."""

from collections.abc import Iterable
from typing import Any

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from .models import AuthBackend

logger = structlog.get_logger()

DEFAULT_UNPROTECTED_PATHS = ("/health", "/metrics")


class AuthenticationMiddleware(BaseHTTPMiddleware):
    """Middleware to handle authentication for all requests."""

    def __init__(
        self,
        app: Any,
        auth_backend: AuthBackend,
        unprotected_paths: Iterable[str] = DEFAULT_UNPROTECTED_PATHS,
    ):
        super().__init__(app)
        self.auth_backend = auth_backend
        self.unprotected_paths = frozenset(unprotected_paths)

    async def dispatch(self, request: Any, call_next: Any) -> Any:
        """Process request with authentication."""
        if request.url.path in self.unprotected_paths:
            return await call_next(request)

        user = await self.auth_backend.authenticate(request)

        if user is None:
            logger.warning(
                "Authentication failed",
                path=request.url.path,
                has_auth_header=bool(request.headers.get("Authorization")),
            )
            return JSONResponse(
                status_code=401,
                content={"error": "Authentication required"},
                headers={"WWW-Authenticate": 'Basic realm="webseal"'},
            )

        request.state.user = user
        logger.info(
            "Authentication successful", user=user.username, path=request.url.path
        )

        return await call_next(request)
