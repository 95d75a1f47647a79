"""Session lifecycle for DOCUMENTS server operations.

A session owns exactly one ``RemoteChannel``.  Setup runs strictly in
order (connect, handshake, change user, select principal, verify server
version); any failure ends the session.  The operation runs only once the
session is ready, and the channel is closed exactly once afterwards,
whatever the outcome.

Close-failure priority:

* operation succeeded, close failed  -> the ``CloseError`` is raised
* operation failed, close failed     -> the operation's error is raised
  and the close failure is only logged
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Awaitable, Callable

from ..config import LoginData, validate_login_data
from ..errors import (
    AuthenticationError,
    ChannelError,
    CloseError,
    ConfigurationError,
    IncompatibleServerError,
    SessionConnectionError,
)
from .channel import RemoteChannel, SocketChannel

logger = logging.getLogger(__name__)

CLIENT_NAME = "documents-scripting"

# Server builds, compared as plain integers
VERSION_MIN = "8034"
VERSION_CATEGORIES = "8041"

VERSION_OPERATION = "PartnerNet.getVersionNo"

ServerOperation = Callable[
    [RemoteChannel, list[Any], LoginData], Awaitable[list[Any]]
]
ChannelFactory = Callable[[LoginData], RemoteChannel]


class SessionState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    SELECTING_CONTEXT = "selecting_context"
    CONTEXT_SELECTED = "context_selected"
    VERIFYING_VERSION = "verifying_version"
    READY = "ready"
    CLOSING = "closing"
    CLOSED = "closed"


def identity_password(password: str) -> str:
    return password


def _build_number(version: Any) -> int | None:
    """Return the build number of *version*, or None if it has none."""
    if version is None:
        return None
    try:
        return int(str(version).strip())
    except ValueError:
        return None


def check_version(login_data: LoginData, version: str) -> bool:
    """Check the session's server build against *version*.

    Sets ``login_data.last_warning`` when category features are requested
    on a server that is too old for them.
    """
    current = _build_number(login_data.documents_version)
    if current is not None and current >= int(version):
        return True
    if version == VERSION_CATEGORIES:
        login_data.last_warning = (
            f"For using category features DOCUMENTS {VERSION_CATEGORIES} is required"
        )
    return False


def default_channel_factory(login_data: LoginData) -> RemoteChannel:
    return SocketChannel(timeout=login_data.timeout)


class SessionManager:
    """Drive one session from connect to close.

    Args:
        login_data: Connection parameters; session facts (user id, server
            version, warnings) are written back to it.
        channel_factory: Creates the channel; defaults to ``SocketChannel``.
        password_transform: Turns the stored password into the form the
            server expects for ``change_user``.
    """

    def __init__(
        self,
        login_data: LoginData,
        channel_factory: ChannelFactory | None = None,
        password_transform: Callable[[str], str] | None = None,
    ) -> None:
        self.login_data = login_data
        self.channel_factory = channel_factory or default_channel_factory
        self.password_transform = password_transform or identity_password
        self.state = SessionState.IDLE

    def _transition(self, state: SessionState) -> None:
        logger.debug("Session %s -> %s", self.state.value, state.value)
        self.state = state

    # ------------------------------------------------------------------
    # Main entry point
    # ------------------------------------------------------------------

    async def run(
        self, params: list[Any], operation: ServerOperation
    ) -> list[Any]:
        """Open the session, run *operation*, and close the session.

        Returns:
            Whatever *operation* returned.

        Raises:
            ConfigurationError: Login data is incomplete or the principal
                is empty.
            SessionConnectionError: Server unreachable or handshake failed.
            AuthenticationError: User or principal rejected.
            IncompatibleServerError: Server build missing or too old.
            CloseError: Operation succeeded but closing failed.
            DocumentsError: Any failure raised by *operation*.
        """
        if self.state is not SessionState.IDLE:
            raise RuntimeError("A SessionManager runs a single session")

        if self.login_data is None:
            raise ConfigurationError("login data missing")
        validate_login_data(self.login_data)

        channel = await self._open()
        try:
            await self._handshake(channel)
            await self._authenticate(channel)
            await self._select_principal(channel)
            await self._verify_version(channel)
        except BaseException:
            await self._close(channel, discard_errors=True)
            raise

        self._transition(SessionState.READY)
        try:
            result = await operation(channel, params, self.login_data)
        except BaseException as err:
            logger.debug("Operation failed: %s", err)
            await self._close(channel, discard_errors=True)
            raise

        await self._close(channel)
        return result

    # ------------------------------------------------------------------
    # Setup steps
    # ------------------------------------------------------------------

    async def _open(self) -> RemoteChannel:
        login = self.login_data
        self._transition(SessionState.CONNECTING)
        channel = self.channel_factory(login)
        try:
            await channel.connect(login.server, login.port)
        except ChannelError as err:
            # Nothing to disconnect before the connection exists
            self._transition(SessionState.CLOSING)
            self._transition(SessionState.CLOSED)
            raise SessionConnectionError(
                f"Cannot connect to {login.server}:{login.port}: {err}"
            ) from err
        self._transition(SessionState.CONNECTED)
        return channel

    async def _handshake(self, channel: RemoteChannel) -> None:
        login = self.login_data
        try:
            await channel.handshake(CLIENT_NAME)
        except ChannelError as err:
            raise SessionConnectionError(
                f"Handshake with {login.server}:{login.port} failed: {err}"
            ) from err

    async def _authenticate(self, channel: RemoteChannel) -> None:
        self._transition(SessionState.AUTHENTICATING)
        login = self.login_data
        try:
            login.user_id = await channel.change_user(
                login.username, self.password_transform(login.password)
            )
        except ChannelError as err:
            raise AuthenticationError(
                f"Login as '{login.username}' failed: {err}"
            ) from err
        self._transition(SessionState.AUTHENTICATED)

    async def _select_principal(self, channel: RemoteChannel) -> None:
        self._transition(SessionState.SELECTING_CONTEXT)
        principal = self.login_data.principal
        if not principal:
            raise ConfigurationError("please set principal")
        try:
            await channel.change_principal(principal)
        except ChannelError as err:
            raise AuthenticationError(
                f"Selecting principal '{principal}' failed: {err}"
            ) from err
        self._transition(SessionState.CONTEXT_SELECTED)

    async def _verify_version(self, channel: RemoteChannel) -> None:
        self._transition(SessionState.VERIFYING_VERSION)
        value = await channel.call_class_operation(VERSION_OPERATION, [])
        version = value[0] if value else None
        self.login_data.documents_version = (
            str(version) if version is not None else None
        )
        logger.info(
            "Current version: %s Required version: %s",
            version,
            VERSION_MIN,
        )

        build = _build_number(version)
        if not version:
            raise IncompatibleServerError(
                "This command is only available on DOCUMENTS"
            )
        if build is None or build < int(VERSION_MIN):
            raise IncompatibleServerError(
                f"Current version: {version} Required version: {VERSION_MIN}"
            )

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    async def _close(
        self, channel: RemoteChannel, discard_errors: bool = False
    ) -> None:
        """Close *channel* once; later calls are no-ops."""
        if self.state in (SessionState.CLOSING, SessionState.CLOSED):
            return
        self._transition(SessionState.CLOSING)
        try:
            await channel.disconnect()
        except Exception as err:
            if discard_errors:
                logger.warning("closeConnection failed: %s", err)
                return
            raise CloseError(str(err), operation="closeConnection") from err
        finally:
            self._transition(SessionState.CLOSED)


async def run_session(
    login_data: LoginData,
    params: list[Any],
    operation: ServerOperation,
    channel_factory: ChannelFactory | None = None,
    password_transform: Callable[[str], str] | None = None,
) -> list[Any]:
    """Run *operation* in a fresh session; see ``SessionManager.run``.

    Example:
        uploaded = await run_session(login_data, records, upload_all)
    """
    manager = SessionManager(
        login_data,
        channel_factory=channel_factory,
        password_transform=password_transform,
    )
    return await manager.run(params, operation)
