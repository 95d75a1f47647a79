"""Remote procedure channel to a DOCUMENTS server.

``RemoteChannel`` is the interface the session and the server operations
talk to.  ``SocketChannel`` implements it over a plain TCP connection:
every request is an XML-RPC ``methodCall`` document and every reply a
``methodResponse``, each framed with a 4-byte big-endian length prefix.
"""

from __future__ import annotations

import asyncio
import logging
import struct
import xmlrpc.client
from typing import Any, Protocol

from ..config import DEFAULT_TIMEOUT
from ..errors import ChannelError

logger = logging.getLogger(__name__)

_HEADER = struct.Struct(">I")
MAX_FRAME_SIZE = 64 * 1024 * 1024


class RemoteChannel(Protocol):
    """Session-oriented remote procedure channel.

    All methods raise ``ChannelError`` on transport failure or when the
    server answers with a fault.
    """

    async def connect(self, host: str, port: int) -> None:
        """Open the connection."""
        ...  # pragma: no cover

    async def handshake(self, client_name: str) -> None:
        """Announce the client to the server."""
        ...  # pragma: no cover

    async def change_user(self, username: str, password: str) -> Any:
        """Log in and return the server's user id."""
        ...  # pragma: no cover

    async def change_principal(self, principal: str) -> None:
        """Select the principal (tenant) for the rest of the session."""
        ...  # pragma: no cover

    async def call_class_operation(
        self, operation: str, params: list[Any]
    ) -> list[Any]:
        """Invoke a named server operation and return its result tuple."""
        ...  # pragma: no cover

    async def disconnect(self) -> None:
        """Close the session and the underlying connection."""
        ...  # pragma: no cover


def encode_frame(payload: str) -> bytes:
    """Encode an XML payload as a length-prefixed UTF-8 frame."""
    data = payload.encode("utf-8")
    return _HEADER.pack(len(data)) + data


def decode_response(data: bytes) -> list[Any]:
    """Parse a ``methodResponse`` body into a result list.

    Raises:
        ChannelError: On a server fault or a malformed response.
    """
    try:
        params, _ = xmlrpc.client.loads(data.decode("utf-8"))
    except xmlrpc.client.Fault as err:
        raise ChannelError(err.faultString, err.faultCode) from None
    except Exception as err:
        raise ChannelError(f"Malformed server response: {err}") from err

    if not params:
        return []
    value = params[0]
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


class SocketChannel:
    """``RemoteChannel`` over TCP using framed XML-RPC messages.

    Args:
        timeout: Seconds allowed for connecting and for each call.
    """

    def __init__(self, timeout: float = DEFAULT_TIMEOUT):
        self.timeout = timeout
        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None

    @property
    def connected(self) -> bool:
        return self._writer is not None

    async def connect(self, host: str, port: int) -> None:
        logger.debug("Opening connection to %s:%d", host, port)
        try:
            self._reader, self._writer = await asyncio.wait_for(
                asyncio.open_connection(host, port), self.timeout
            )
        except asyncio.TimeoutError:
            raise ChannelError(
                f"Connecting to {host}:{port} timed out after {self.timeout}s"
            ) from None
        except OSError as err:
            raise ChannelError(
                f"Cannot connect to {host}:{port}: {err}"
            ) from err

    async def _request(self, method: str, *params: Any) -> list[Any]:
        """Send one request and wait for its response."""
        if self._reader is None or self._writer is None:
            raise ChannelError(f"Not connected (calling {method})")

        payload = xmlrpc.client.dumps(
            params, methodname=method, allow_none=True
        )
        logger.debug("-> %s %d param(s)", method, len(params))
        try:
            self._writer.write(encode_frame(payload))
            await asyncio.wait_for(self._writer.drain(), self.timeout)
            header = await asyncio.wait_for(
                self._reader.readexactly(_HEADER.size), self.timeout
            )
            (size,) = _HEADER.unpack(header)
            if size > MAX_FRAME_SIZE:
                raise ChannelError(
                    f"Response frame too large ({size} bytes)"
                )
            body = await asyncio.wait_for(
                self._reader.readexactly(size), self.timeout
            )
        except asyncio.TimeoutError:
            raise ChannelError(
                f"{method} timed out after {self.timeout}s"
            ) from None
        except asyncio.IncompleteReadError:
            raise ChannelError(
                f"Connection closed by server during {method}"
            ) from None
        except OSError as err:
            raise ChannelError(f"{method}: {err}") from err

        return decode_response(body)

    async def handshake(self, client_name: str) -> None:
        await self._request("session.connect", client_name)

    async def change_user(self, username: str, password: str) -> Any:
        result = await self._request(
            "session.changeUser", username, password
        )
        return result[0] if result else None

    async def change_principal(self, principal: str) -> None:
        await self._request("session.changePrincipal", principal)

    async def call_class_operation(
        self, operation: str, params: list[Any]
    ) -> list[Any]:
        return await self._request(operation, *params)

    async def disconnect(self) -> None:
        if self._writer is None:
            return
        writer = self._writer
        try:
            await self._request("session.disconnect")
        finally:
            self._reader = None
            self._writer = None
            writer.close()
            try:
                await writer.wait_closed()
            except OSError as err:
                logger.debug("Error while closing socket: %s", err)
