"""WebSEAL gateway client with signed requests and bounded retries."""

import hashlib
import hmac
import json
import secrets
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import httpx
import structlog
import yaml

from .config import GatewayConfig

logger = structlog.get_logger()

ACCESS_ACCEPT = "Access-Accept"
CODE_FIELD = "code"
SIGNATURE_HEADER = "X-Webseal-Signature"
RESPONSE_SIGNATURE_HEADER = "X-Webseal-Response-Signature"


class GatewayError(Exception):
    """Base exception for gateway communication failures."""

    pass


class GatewayTimeout(GatewayError):
    """No reply from the gateway within the timeout, after all retries."""

    def __init__(self, address: str, attempts: int):
        super().__init__(
            f"No reply from gateway {address} after {attempts} attempt(s)"
        )
        self.address = address
        self.attempts = attempts


@dataclass
class GatewayReply:
    """Status code plus the attributes returned by the gateway."""

    code: str
    attributes: dict[str, Any] = field(default_factory=dict)

    @property
    def accepted(self) -> bool:
        return self.code == ACCESS_ACCEPT


def sign(secret: str, *parts: bytes) -> str:
    """HMAC-SHA256 over the concatenated parts, keyed by the shared secret."""
    mac = hmac.new(secret.encode(), digestmod=hashlib.sha256)
    for part in parts:
        mac.update(part)
    return mac.hexdigest()


class GatewayDictionary:
    """Translates wire attribute names into friendly names.

    Loaded from a single YAML file or a directory of them. Each file holds an
    ``attributes`` mapping of wire name to friendly name; later files win.
    """

    def __init__(self, names: dict[str, str] | None = None):
        self.names: dict[str, str] = dict(names or {})

    @classmethod
    def load(cls, path: str | Path) -> "GatewayDictionary":
        dictionary_path = Path(path)
        if dictionary_path.is_dir():
            files = sorted(
                p for p in dictionary_path.iterdir() if p.suffix in (".yaml", ".yml")
            )
        elif dictionary_path.exists():
            files = [dictionary_path]
        else:
            raise FileNotFoundError(f"Dictionary path not found: {dictionary_path}")

        names: dict[str, str] = {}
        for dictionary_file in files:
            with open(dictionary_file) as f:
                content = yaml.safe_load(f) or {}
            attributes = content.get("attributes") or {}
            if not isinstance(attributes, dict):
                raise ValueError(
                    f"Dictionary file {dictionary_file} has a malformed 'attributes' section"
                )
            names.update({str(k): str(v) for k, v in attributes.items()})

        logger.info(
            "Loaded gateway dictionary",
            path=str(dictionary_path),
            files=len(files),
            attributes=len(names),
        )
        return cls(names)

    def translate(self, attributes: dict[str, Any]) -> dict[str, Any]:
        return {self.names.get(str(k), str(k)): v for k, v in attributes.items()}


class WebsealClient:
    """Sends authentication requests to the configured gateway."""

    def __init__(
        self,
        config: GatewayConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config
        self.dictionary = (
            GatewayDictionary.load(config.dictionary_path)
            if config.dictionary_path
            else None
        )
        self.http_client = httpx.AsyncClient(
            timeout=config.timeout,
            verify=config.verify_tls,
            transport=transport,
            headers={"Accept": "application/json", "User-Agent": "webseal-auth/0.1.0"},
        )

    async def __aenter__(self) -> "WebsealClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.http_client.aclose()

    async def authenticate(self, username: str, password: str) -> GatewayReply:
        """Ask the gateway to check a username and password.

        Every attempt is bounded by the configured timeout and timeouts are
        retried up to ``retries`` more times.

        Raises:
            GatewayTimeout: No reply after all attempts.
            GatewayError: Transport failure, server error or malformed reply.
        """
        authenticator = secrets.token_hex(16)
        body = json.dumps(
            {"username": username, "password": password, "authenticator": authenticator}
        ).encode()
        headers = {
            "Content-Type": "application/json",
            SIGNATURE_HEADER: sign(self.config.secret, body),
        }

        attempts = self.config.retries + 1
        for attempt in range(1, attempts + 1):
            start_time = time.time()
            try:
                response = await self.http_client.post(
                    self.config.url, content=body, headers=headers
                )
            except httpx.TimeoutException:
                logger.warning(
                    "Gateway request timed out",
                    gateway=self.config.address,
                    attempt=attempt,
                    max_attempts=attempts,
                    timeout_seconds=self.config.timeout,
                )
                continue
            except httpx.RequestError as e:
                logger.error(
                    "Gateway request failed",
                    gateway=self.config.address,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise GatewayError(f"Gateway request failed: {e}") from e

            logger.debug(
                "Gateway HTTP response",
                gateway=self.config.address,
                status_code=response.status_code,
                duration_ms=round((time.time() - start_time) * 1000, 2),
                attempt=attempt,
            )
            return self._parse_reply(response, authenticator)

        raise GatewayTimeout(self.config.address, attempts)

    def _parse_reply(self, response: httpx.Response, authenticator: str) -> GatewayReply:
        if response.status_code >= 500:
            raise GatewayError(f"Gateway unavailable: HTTP {response.status_code}")

        expected = sign(self.config.secret, authenticator.encode(), response.content)
        received = response.headers.get(RESPONSE_SIGNATURE_HEADER, "")
        if not hmac.compare_digest(expected, received):
            raise GatewayError("Gateway reply signature mismatch")

        try:
            payload = response.json()
        except ValueError as e:
            raise GatewayError("Gateway reply is not valid JSON") from e

        if not isinstance(payload, dict) or not isinstance(payload.get(CODE_FIELD), str):
            raise GatewayError("Gateway reply has no status code")

        attributes = {k: v for k, v in payload.items() if k != CODE_FIELD}
        if self.dictionary:
            attributes = self.dictionary.translate(attributes)
        return GatewayReply(code=payload[CODE_FIELD], attributes=attributes)
