"""Starlette integration for gateway authentication."""

from .backends import WebsealAuthBackend
from .middleware import AuthenticationMiddleware
from .models import AuthBackend, User

__all__ = [
    "AuthBackend",
    "AuthenticationMiddleware",
    "User",
    "WebsealAuthBackend",
]
