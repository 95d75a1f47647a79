"""Session and channel layer shared by the sync operations and the CLI."""

from .async_utils import run_sync
from .channel import RemoteChannel, SocketChannel
from .session import SessionManager, SessionState, run_session

__all__ = [
    "RemoteChannel",
    "SessionManager",
    "SessionState",
    "SocketChannel",
    "run_session",
    "run_sync",
]
