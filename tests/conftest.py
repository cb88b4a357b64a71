"""Shared fixtures for gateway tests."""

import json
from collections.abc import Callable
from typing import Any

import httpx
import pytest

from webseal_auth.client import RESPONSE_SIGNATURE_HEADER, sign
from webseal_auth.config import GatewayConfig

SECRET = "test-shared-secret"


class FakeGateway:
    """Answers gateway requests from a queue of replies.

    Each queued item is a reply dict, an exception to raise, or a
    ``(status_code, reply)`` tuple.
    """

    def __init__(self, secret: str = SECRET):
        self.secret = secret
        self.replies: list[Any] = []
        self.requests: list[httpx.Request] = []

    def queue(self, *replies: Any) -> "FakeGateway":
        self.replies.extend(replies)
        return self

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        item = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(item, Exception):
            raise item
        status_code, reply = item if isinstance(item, tuple) else (200, item)
        authenticator = json.loads(request.content)["authenticator"]
        content = json.dumps(reply).encode()
        return httpx.Response(
            status_code,
            content=content,
            headers={
                "Content-Type": "application/json",
                RESPONSE_SIGNATURE_HEADER: sign(
                    self.secret, authenticator.encode(), content
                ),
            },
        )

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def sent(self, index: int = -1) -> dict[str, Any]:
        return json.loads(self.requests[index].content)  # type: ignore[no-any-return]


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def make_config() -> Callable[..., GatewayConfig]:
    def _make(**overrides: Any) -> GatewayConfig:
        options: dict[str, Any] = {
            "server": "webseal.example.com",
            "secret": SECRET,
            "port": 1812,
            "timeout": 0.5,
            "retries": 0,
        }
        options.update(overrides)
        return GatewayConfig(**options)

    return _make
