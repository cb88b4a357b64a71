"""Resolve an authentication attempt against the gateway and local store.

The resolver extracts credentials, derives the UID, finds or builds the local
record, asks the gateway, and on acceptance copies the reply attributes onto
the record and runs the post-authentication hook. Rejections return None and
never persist anything.
"""

import asyncio
import weakref
from collections.abc import Awaitable, Callable, Mapping
from enum import Enum
from typing import Any

import structlog

from .client import GatewayTimeout, WebsealClient
from .config import GatewayConfig
from .credentials import Credentials, extract_credentials
from .store import IdentityRecord, IdentityStore, PersistenceError

logger = structlog.get_logger()

PostAuthenticationHook = Callable[[IdentityRecord, IdentityStore], Awaitable[None]]


class RejectionReason(Enum):
    """Why an attempt was rejected. Only used for diagnostics."""

    CREDENTIALS_MISSING = "credentials_missing"
    GATEWAY_REJECTED = "gateway_rejected"
    GATEWAY_TIMEOUT = "gateway_timeout"


async def persist_without_validation(record: IdentityRecord, store: IdentityStore) -> None:
    """Default post-authentication hook: save the record, skipping validation.

    Replacement hooks must still leave the record persisted, either by
    awaiting this function or by saving it themselves.
    """
    if not await store.save(record, validate=False):
        raise PersistenceError("Identity record could not be saved after authentication")


class WebsealAuthenticator:
    """Authenticates attempts for one identity type against its gateway."""

    def __init__(
        self,
        config: GatewayConfig,
        store: IdentityStore,
        client: WebsealClient | None = None,
        after_authentication: PostAuthenticationHook = persist_without_validation,
    ):
        self.config = config
        self.store = store
        # Only a client built here is closed by aclose().
        self._owns_client = client is None
        self.client = client or WebsealClient(config)
        self.after_authentication = after_authentication
        self._uid_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    async def __aenter__(self) -> "WebsealAuthenticator":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    def credentials(self, attempt: Mapping[str, Any]) -> Credentials:
        return extract_credentials(
            attempt, self.config.authentication_keys, self.config.case_insensitive_keys
        )

    def uid_for(self, username: str) -> str:
        return self.config.uid_generator(username, self.config.server)

    def _lock_for(self, uid: str) -> asyncio.Lock:
        lock = self._uid_locks.get(uid)
        if lock is None:
            lock = asyncio.Lock()
            self._uid_locks[uid] = lock
        return lock

    async def valid_password(
        self, resource: IdentityRecord, username: str, password: str
    ) -> bool:
        """Check the credentials with the gateway.

        On acceptance the reply attributes, without the status code, are set
        on ``resource.webseal_attributes``. A gateway timeout counts as a
        rejection only when ``handle_timeout_as_failure`` is set; otherwise
        it propagates.
        """
        try:
            reply = await self.client.authenticate(username, password)
        except GatewayTimeout as e:
            if self.config.handle_timeout_as_failure:
                self._log_rejection(RejectionReason.GATEWAY_TIMEOUT, username, error=str(e))
                return False
            raise

        if not reply.accepted:
            self._log_rejection(RejectionReason.GATEWAY_REJECTED, username, code=reply.code)
            return False

        resource.webseal_attributes = dict(reply.attributes)
        return True

    async def find_for_authentication(
        self, attempt: Mapping[str, Any]
    ) -> IdentityRecord | None:
        """Return the authenticated record for an attempt, or None if rejected.

        Raises:
            GatewayTimeout: The gateway timed out and timeouts are not failures.
            GatewayError: Any other gateway failure.
            PersistenceError: The post-authentication hook could not save.
        """
        username, password = self.credentials(attempt)
        if not username or password is None:
            self._log_rejection(RejectionReason.CREDENTIALS_MISSING, username)
            return None

        uid_field = self.config.uid_field
        uid = self.uid_for(username)

        # The store may not offer atomic find-or-create, so attempts for the
        # same UID run one at a time.
        async with self._lock_for(uid):
            resource = await self.store.find_one_by(uid_field, uid)
            if resource is None:
                resource = self.store.build(uid_field, uid)

            if not await self.valid_password(resource, username, password):
                return None

            await self.after_authentication(resource, self.store)

        logger.info(
            "Gateway authentication successful",
            username=username,
            uid=uid,
            gateway=self.config.address,
            attributes=sorted(resource.webseal_attributes or {}),
        )
        return resource

    def _log_rejection(self, reason: RejectionReason, username: str, **context: Any) -> None:
        logger.warning(
            "Gateway authentication rejected",
            reason=reason.value,
            username=username,
            gateway=self.config.address,
            **context,
        )
