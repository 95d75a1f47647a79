"""Conflict-aware script synchronisation.

Modules:

- ``models``     -- ``ScriptRecord``, ``DocumentsInfo``, ``EncryptionState``.
- ``content``    -- BOM stripping and MD5 content hashes.
- ``resolver``   -- ``check_for_conflict``: optimistic-concurrency probe.
- ``operations`` -- single-record download/upload/run and the server
  probes (version, decryption permission, names, parameters).
- ``batch``      -- ``run_batch`` and the ``upload_all`` /
  ``download_all`` / ``run_all`` batch operations.
- ``state``      -- ``SyncState``: last-sync hashes persisted between runs.

Usage example
-------------
::

    from documents_scripting.core.session import run_session
    from documents_scripting.sync.batch import upload_all

    uploaded = await run_session(login_data, records, upload_all)
    conflicts = [r for r in uploaded if r.conflict]

``batch`` and ``operations`` are not re-exported here.
"""

from .content import content_hash, ensure_bom, ensure_no_bom
from .models import DocumentsInfo, EncryptionState, ScriptRecord
from .state import SyncState

__all__ = [
    "DocumentsInfo",
    "EncryptionState",
    "ScriptRecord",
    "SyncState",
    "content_hash",
    "ensure_bom",
    "ensure_no_bom",
]
