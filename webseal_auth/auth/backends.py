"""Gateway authentication backend for Starlette requests."""

import base64
import binascii
from typing import Any

import structlog

from ..client import GatewayError, GatewayTimeout
from ..credentials import PASSWORD_KEY
from ..resolver import WebsealAuthenticator
from ..store import IdentityRecord, PersistenceError
from .models import AuthBackend, User

logger = structlog.get_logger()

FORM_CONTENT_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


class WebsealAuthBackend(AuthBackend):
    """Authenticates requests carrying a username and password.

    Credentials come from HTTP Basic auth or, failing that, a form body.
    Every failure, including gateway and persistence errors, is reported as
    ``None`` so clients only ever see an authentication failure.

    Reading a form consumes the request body, so downstream handlers find the
    submitted fields, minus the password, on
    ``request.state.authentication_attempt`` instead of ``await request.form()``.
    """

    def __init__(self, authenticator: WebsealAuthenticator, groups_attribute: str = "groups"):
        self.authenticator = authenticator
        self.groups_attribute = groups_attribute

    async def authentication_attempt(self, request: Any) -> dict[str, Any] | None:
        """Build the authentication attempt from the request, if it has one."""
        username_key = self.authenticator.config.authentication_keys[0]

        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Basic "):
            try:
                decoded = base64.b64decode(auth_header[6:], validate=True).decode()
            except (binascii.Error, UnicodeDecodeError):
                logger.warning("Malformed basic authorization header")
                return None
            username, sep, password = decoded.partition(":")
            if not sep:
                return None
            return {username_key: username, PASSWORD_KEY: password}

        content_type = request.headers.get("Content-Type", "")
        if request.method == "POST" and content_type.startswith(FORM_CONTENT_TYPES):
            form = await request.form()
            attempt = {key: value for key, value in form.items() if isinstance(value, str)}
            request.state.authentication_attempt = {
                key: value for key, value in attempt.items() if key != PASSWORD_KEY
            }
            return attempt

        return None

    async def authenticate(self, request: Any) -> User | None:
        attempt = await self.authentication_attempt(request)
        if attempt is None:
            return None

        try:
            resource = await self.authenticator.find_for_authentication(attempt)
        except GatewayTimeout as e:
            logger.error("Gateway timed out", error=str(e), attempts=e.attempts)
            return None
        except GatewayError as e:
            logger.error("Gateway error", error=str(e), error_type=type(e).__name__)
            return None
        except PersistenceError as e:
            logger.error("Authenticated identity could not be persisted", error=str(e))
            return None

        if resource is None:
            return None
        return self._to_user(self.authenticator.credentials(attempt).username, resource)

    def _to_user(self, username: str, resource: IdentityRecord) -> User:
        attributes = resource.webseal_attributes or {}
        groups = attributes.get(self.groups_attribute) or []
        if isinstance(groups, str):
            groups = [groups]
        return User(
            username=username,
            uid=str(resource[self.authenticator.config.uid_field]),
            groups=list(groups),
            attributes=dict(attributes),
        )
