"""Exception taxonomy for documents_scripting.

Every failure the session or a server operation can report derives from
``DocumentsError``.  Conflicts are not errors: they are recorded on the
``ScriptRecord`` (``conflict=True``) and the batch carries on.

Errors carry an optional operation name.  When present, ``str(err)``
renders ``"<operation> failed: <reason>"`` which is the user-visible form.
"""

from __future__ import annotations

import functools
from typing import Any, Awaitable, Callable, TypeVar

T = TypeVar("T")

ERROR_DECRYPT_PERMISSION = (
    "Only unencrypted or decrypted scripts can be downloaded"
)


class DocumentsError(Exception):
    """Base class for all documents_scripting failures."""

    def __init__(self, message: str, operation: str | None = None):
        super().__init__(message)
        self.message = message
        self.operation = operation

    def __str__(self) -> str:
        if self.operation:
            return f"{self.operation} failed: {self.message}"
        return self.message


class ChannelError(DocumentsError):
    """Transport failure or server fault on a remote call."""

    def __init__(
        self,
        message: str,
        fault_code: int | None = None,
        operation: str | None = None,
    ):
        super().__init__(message, operation)
        self.fault_code = fault_code


class SessionConnectionError(DocumentsError):
    """The server could not be reached or the handshake failed."""


class AuthenticationError(DocumentsError):
    """User credentials or the selected principal were rejected."""


class ConfigurationError(DocumentsError):
    """Login data is incomplete or invalid."""


class IncompatibleServerError(DocumentsError):
    """The server build is missing or older than the supported minimum."""


class NotFoundError(DocumentsError):
    """A script does not exist on the server."""


class PermissionDeniedError(DocumentsError):
    """Script is encrypted on the server and may not be decrypted."""

    def __init__(
        self,
        message: str = ERROR_DECRYPT_PERMISSION,
        operation: str | None = None,
    ):
        super().__init__(message, operation)


class InvalidRecordError(DocumentsError):
    """A script record is missing data the operation requires."""


class CloseError(DocumentsError):
    """Closing the session channel failed."""


def reports_failure(
    operation: str,
) -> Callable[
    [Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]
]:
    """Stamp *operation* on ``DocumentsError``s raised by the wrapped coroutine.

    The exception class is preserved so callers can still match on it.
    Errors that already name an operation are left alone, so the
    innermost operation is the one reported.
    """

    def decorator(
        func: Callable[..., Awaitable[T]],
    ) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            try:
                return await func(*args, **kwargs)
            except DocumentsError as err:
                if err.operation is None:
                    err.operation = operation
                raise

        return wrapper

    return decorator
