"""Pydantic models shared by the session and sync modules.

- ``EncryptionState``: encryption flag as reported by the server.
- ``ScriptRecord``: one script plus its synchronisation metadata.
- ``DocumentsInfo``: read-only facts about the server.

``ScriptRecord`` is mutable: operations update it in place as
information arrives from the server, and the caller reads the results off
the same instances it passed in.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel


class EncryptionState(str, Enum):
    """Encryption state of a script, using the server's wire values.

    ``DECRYPTED`` means encrypted on the server but held in plain text
    locally.
    """

    PLAIN = "false"
    ENCRYPTED = "true"
    DECRYPTED = "decrypted"


class ScriptRecord(BaseModel):
    """A script and its synchronisation metadata.

    Attributes:
        name: Script name without extension, unique on the server.
        path: Local directory the script lives in (absent for server-only
            listings).
        rename: If set, download stores the script under this name
            instead (used to compare a server copy with the local one).
        source_code: Local content.
        server_code: Remote content; set on download, and on upload only
            when the server copy diverged from the last sync point.
        encryption_state: Encryption flag sent with uploads.
        conflict_mode: Enables hash-based conflict detection on upload.
        last_sync_hash: MD5 of ``source_code`` at the last successful
            up- or download; only maintained in conflict mode.
        conflict: Divergence detected and not yet resolved.
        force_upload: Skip conflict detection for the next upload.
        category: Server-side category.
        category_root: Local root under which category folders are made.
        output: Output of the last run.
    """

    name: str
    path: str | None = None
    rename: str | None = None
    source_code: str | None = None
    server_code: str | None = None
    encryption_state: EncryptionState = EncryptionState.PLAIN
    conflict_mode: bool = True
    last_sync_hash: str | None = None
    conflict: bool = False
    force_upload: bool = False
    category: str | None = None
    category_root: str | None = None
    output: str | None = None

    model_config = {"validate_assignment": True}


class DocumentsInfo(BaseModel):
    """Server facts returned by single-shot probes.

    Attributes:
        version: Server build number as reported (e.g. ``"8041"``).
        decryption_permission: Whether the client may decrypt scripts.
    """

    version: str | None = None
    decryption_permission: bool | None = None

    model_config = {"frozen": True}
