"""Tests for authentication middleware."""

from unittest.mock import AsyncMock, Mock

from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, PlainTextResponse
from starlette.routing import Route
from starlette.testclient import TestClient

from webseal_auth.auth.backends import WebsealAuthBackend
from webseal_auth.auth.middleware import AuthenticationMiddleware
from webseal_auth.auth.models import User
from webseal_auth.client import WebsealClient
from webseal_auth.resolver import WebsealAuthenticator
from webseal_auth.store import InMemoryIdentityStore


async def health(request: Request) -> PlainTextResponse:
    return PlainTextResponse("OK")


async def whoami(request: Request) -> JSONResponse:
    user = request.state.user
    return JSONResponse(
        {
            "username": user.username,
            "uid": user.uid,
            "groups": user.groups,
            "auth_method": user.auth_method,
        }
    )


async def login(request: Request) -> JSONResponse:
    return JSONResponse(
        {
            "uid": request.state.user.uid,
            "form": request.state.authentication_attempt,
        }
    )


def make_app(auth_backend, **kwargs) -> Starlette:
    app = Starlette(
        routes=[
            Route("/health", health),
            Route("/whoami", whoami),
            Route("/profile", whoami, methods=["POST"]),
            Route("/login", login, methods=["POST"]),
        ]
    )
    app.add_middleware(AuthenticationMiddleware, auth_backend=auth_backend, **kwargs)
    return app


class TestAuthenticationMiddleware:
    """Test the authentication middleware."""

    def test_unprotected_endpoints_no_auth_required(self) -> None:
        """Test that unprotected endpoints don't require authentication."""
        mock_auth_backend = Mock()
        mock_auth_backend.authenticate = AsyncMock(return_value=None)
        client = TestClient(make_app(mock_auth_backend))

        response = client.get("/health")
        assert response.status_code == 200
        assert response.text == "OK"

        response = client.get("/whoami")
        assert response.status_code == 401
        assert response.json() == {"error": "Authentication required"}
        assert response.headers["WWW-Authenticate"] == 'Basic realm="webseal"'

        assert mock_auth_backend.authenticate.call_count == 1

    def test_custom_unprotected_paths(self) -> None:
        mock_auth_backend = Mock()
        mock_auth_backend.authenticate = AsyncMock(return_value=None)
        client = TestClient(make_app(mock_auth_backend, unprotected_paths=["/whoami"]))

        assert client.get("/health").status_code == 401

    def test_user_added_to_request_state(self) -> None:
        """Test that successful authentication adds user to request state."""
        mock_user = User(
            username="alice",
            uid="alice@webseal.example.com",
            groups=["ops"],
            auth_method="webseal",
        )
        mock_auth_backend = Mock()
        mock_auth_backend.authenticate = AsyncMock(return_value=mock_user)
        client = TestClient(make_app(mock_auth_backend))

        response = client.get("/whoami")

        assert response.status_code == 200
        assert response.json() == {
            "username": "alice",
            "uid": "alice@webseal.example.com",
            "groups": ["ops"],
            "auth_method": "webseal",
        }
        mock_auth_backend.authenticate.assert_called_once()

    def test_end_to_end_with_gateway(self, gateway, make_config) -> None:
        """Test basic auth and form login against a fake gateway."""
        gateway.queue({"code": "Access-Accept", "groups": ["ops"]})
        config = make_config()
        store = InMemoryIdentityStore(unique_fields=("uid",))
        authenticator = WebsealAuthenticator(
            config, store, WebsealClient(config, transport=gateway.transport)
        )
        client = TestClient(make_app(WebsealAuthBackend(authenticator)))

        response = client.get("/whoami", auth=("Alice", "pw"))
        assert response.status_code == 200
        assert response.json()["uid"] == "alice@webseal.example.com"

        response = client.post("/profile", data={"username": "alice", "password": "pw"})
        assert response.status_code == 200
        assert response.json()["groups"] == ["ops"]

        assert store.count() == 1

    def test_end_to_end_rejection(self, gateway, make_config) -> None:
        gateway.queue({"code": "Access-Reject"})
        config = make_config()
        store = InMemoryIdentityStore(unique_fields=("uid",))
        authenticator = WebsealAuthenticator(
            config, store, WebsealClient(config, transport=gateway.transport)
        )
        client = TestClient(make_app(WebsealAuthBackend(authenticator)))

        response = client.get("/whoami", auth=("alice", "wrong"))

        assert response.status_code == 401
        assert store.count() == 0

    def test_form_login_fields_reach_handler(self, gateway, make_config) -> None:
        """Test form fields other than the password are passed to the handler."""
        gateway.queue({"code": "Access-Accept"})
        config = make_config()
        authenticator = WebsealAuthenticator(
            config,
            InMemoryIdentityStore(unique_fields=("uid",)),
            WebsealClient(config, transport=gateway.transport),
        )
        client = TestClient(make_app(WebsealAuthBackend(authenticator)))

        response = client.post(
            "/login",
            data={"username": "Alice", "password": "pw", "next": "/home"},
        )

        assert response.status_code == 200
        assert response.json() == {
            "uid": "alice@webseal.example.com",
            "form": {"username": "Alice", "next": "/home"},
        }
