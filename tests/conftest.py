"""Shared pytest fixtures for documents-scripting tests."""

from typing import Any

import pytest

from documents_scripting.config import LoginData
from documents_scripting.errors import ChannelError


class FakeChannel:
    """Scripted in-memory ``RemoteChannel``.

    ``responses`` maps a class operation name to one of:

    * a list -- returned as the result tuple,
    * an exception instance -- raised,
    * a callable taking the call's params -- its return value is handled
      the same way (so it may return a list or an exception).

    Unknown operations return ``[]``.  Every call is appended to ``calls``
    as ``(name, args)``.
    """

    def __init__(self, responses: dict[str, Any] | None = None):
        self.responses: dict[str, Any] = {
            "PartnerNet.getVersionNo": ["8041"],
        }
        self.responses.update(responses or {})
        self.calls: list[tuple[str, list[Any]]] = []
        self.connect_error: Exception | None = None
        self.handshake_error: Exception | None = None
        self.change_user_error: Exception | None = None
        self.principal_error: Exception | None = None
        self.disconnect_error: Exception | None = None
        self.user_id: Any = 42
        self.disconnect_count = 0

    @property
    def operations(self) -> list[str]:
        """Names of the class operations called, in order."""
        return [name for name, _ in self.calls if "." in name]

    async def connect(self, host: str, port: int) -> None:
        self.calls.append(("connect", [host, port]))
        if self.connect_error:
            raise self.connect_error

    async def handshake(self, client_name: str) -> None:
        self.calls.append(("handshake", [client_name]))
        if self.handshake_error:
            raise self.handshake_error

    async def change_user(self, username: str, password: str) -> Any:
        self.calls.append(("change_user", [username, password]))
        if self.change_user_error:
            raise self.change_user_error
        return self.user_id

    async def change_principal(self, principal: str) -> None:
        self.calls.append(("change_principal", [principal]))
        if self.principal_error:
            raise self.principal_error

    async def call_class_operation(
        self, operation: str, params: list[Any]
    ) -> list[Any]:
        self.calls.append((operation, list(params)))
        response = self.responses.get(operation, [])
        if callable(response):
            response = response(params)
        if isinstance(response, Exception):
            raise response
        return list(response)

    async def disconnect(self) -> None:
        self.calls.append(("disconnect", []))
        self.disconnect_count += 1
        if self.disconnect_error:
            raise self.disconnect_error


@pytest.fixture
def fake_channel():
    """A FakeChannel reporting server build 8041."""
    return FakeChannel()


@pytest.fixture
def login_data():
    """LoginData for a category-capable server."""
    return LoginData(
        server="documents.example.com",
        username="admin",
        password="secret",
        principal="relations",
        documents_version="8041",
    )


@pytest.fixture
def channel_error():
    """Factory for transport failures."""

    def _make(message: str = "connection reset") -> ChannelError:
        return ChannelError(message)

    return _make


@pytest.fixture
def make_fake_channel():
    """Factory for additional FakeChannel instances."""
    return FakeChannel
