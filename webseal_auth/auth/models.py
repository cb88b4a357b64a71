"""Request-level identity types for the Starlette integration."""

from dataclasses import dataclass, field
from typing import Any, Protocol


@dataclass
class User:
    """Identity attached to ``request.state.user`` after a gateway login."""

    username: str
    uid: str
    groups: list[str]
    auth_method: str = "webseal"
    attributes: dict[str, Any] = field(default_factory=dict, compare=False)


class AuthBackend(Protocol):
    """Anything that turns a request into a User, or None on failure."""

    async def authenticate(self, request: Any) -> User | None: ...
