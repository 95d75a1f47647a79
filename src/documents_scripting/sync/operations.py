"""Server operations on DOCUMENTS scripts.

Two shapes are provided:

* Single-record operations -- ``download_script``, ``upload_script``,
  ``run_script`` -- take ``(channel, record, login_data)`` and return the
  updated record.  ``sync.batch`` applies them over a list.
* Session operations -- everything with the ``(channel, params,
  login_data) -> list`` signature -- can be handed straight to
  ``run_session()``.

Failures raise ``DocumentsError`` subclasses named after the operation
(``"uploadScript failed: ..."``).  Local I/O errors are not wrapped.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

from ..config import LoginData
from ..core.channel import RemoteChannel
from ..core.session import (
    VERSION_CATEGORIES,
    VERSION_OPERATION,
    check_version,
)
from ..errors import (
    ChannelError,
    DocumentsError,
    InvalidRecordError,
    NotFoundError,
    PermissionDeniedError,
    reports_failure,
)
from ..file_handler import script_target_path, write_script_file_async
from .content import content_hash, ensure_no_bom
from .models import DocumentsInfo, EncryptionState, ScriptRecord
from .resolver import DOWNLOAD_OPERATION, check_for_conflict

logger = logging.getLogger(__name__)

UPLOAD_OPERATION = "PortalScript.uploadScript"
RUN_OPERATION = "PortalScript.runScript"
NAMES_OPERATION = "PortalScript.getScriptNames"
INFO_OPERATION = "PortalScript.getScriptInfoAsJSON"
PROPERTY_OPERATION = "PartnerNet.getProperty"
SYSTEM_USER_OPERATION = "Systemuser.get"

# Flags that mean the downloaded text is usable locally
_DOWNLOADABLE = {EncryptionState.PLAIN.value, EncryptionState.DECRYPTED.value}


# ---------------------------------------------------------------------------
# Single-record operations
# ---------------------------------------------------------------------------


def _download_path(
    record: ScriptRecord, category: Any, login_data: LoginData
) -> Path:
    """Where a downloaded script is written.

    A category subfolder is used only when the record has a category root,
    the server reported a category, and the server supports categories.
    """
    if record.rename:
        return script_target_path(record.path or "", record.rename)
    if (
        record.category_root
        and category
        and isinstance(category, str)
        and check_version(login_data, VERSION_CATEGORIES)
    ):
        record.category = category
        return script_target_path(record.category_root, record.name, category)
    return script_target_path(record.path or "", record.name)


@reports_failure("downloadScript")
async def download_script(
    channel: RemoteChannel, record: ScriptRecord, login_data: LoginData
) -> ScriptRecord:
    """Fetch *record* from the server and write it to disk.

    Raises:
        InvalidRecordError: If the record has no local path.
        NotFoundError: If the server has no such script.
        PermissionDeniedError: If the script is encrypted on the server
            and may not be decrypted.
        OSError: If the local file cannot be written.
    """
    if not record.path:
        raise InvalidRecordError(f"path missing for {record.name}")

    value = await channel.call_class_operation(
        DOWNLOAD_OPERATION, [record.name]
    )
    if not value or not isinstance(value[0], str) or not value[0]:
        raise NotFoundError(f"could not find {record.name} on server")

    flag = value[1] if len(value) > 1 else None
    if flag not in _DOWNLOADABLE:
        raise PermissionDeniedError()

    record.server_code = ensure_no_bom(value[0])
    record.encryption_state = EncryptionState(flag)

    category = value[2] if len(value) > 2 else None
    target = _download_path(record, category, login_data)
    await write_script_file_async(target, record.server_code)

    record.source_code = record.server_code
    if record.conflict_mode:
        record.last_sync_hash = content_hash(record.source_code)
    logger.info("downloaded: %s -> %s", record.name, target)
    return record


@reports_failure("uploadScript")
async def upload_script(
    channel: RemoteChannel, record: ScriptRecord, login_data: LoginData
) -> ScriptRecord:
    """Upload *record* unless the server copy changed since the last sync.

    On conflict no upload is made and the record comes back with
    ``conflict=True`` (and ``server_code`` unless the script was deleted on
    the server); the caller decides whether to force the upload.

    Raises:
        InvalidRecordError: If the record has no source code.
        ChannelError: If the conflict probe or the upload fails.
    """
    if not record.source_code:
        raise InvalidRecordError(
            f"scriptname or sourcecode missing in uploadScript ({record.name})"
        )

    record.source_code = ensure_no_bom(record.source_code)
    # A new attempt re-evaluates any earlier conflict
    record.conflict = False
    record.server_code = None

    await check_for_conflict(channel, record)
    if record.conflict:
        logger.info("not uploaded (conflict): %s", record.name)
        return record

    param_category = ""
    if record.category and check_version(login_data, VERSION_CATEGORIES):
        param_category = record.category

    await channel.call_class_operation(
        UPLOAD_OPERATION,
        [
            record.name,
            record.source_code,
            record.encryption_state.value,
            param_category,
        ],
    )

    if record.conflict_mode:
        record.last_sync_hash = content_hash(record.source_code)
    record.force_upload = False
    logger.info("uploaded: %s", record.name)
    return record


@reports_failure("runScript")
async def run_script(
    channel: RemoteChannel, record: ScriptRecord, login_data: LoginData
) -> ScriptRecord:
    """Execute *record* on the server and store its output.

    Raises:
        NotFoundError: If the server returned no output at all.
    """
    value = await channel.call_class_operation(RUN_OPERATION, [record.name])
    if not value:
        raise NotFoundError(f"could not find {record.name} on server")

    record.output = os.linesep.join(str(line) for line in value)
    logger.info("ran: %s", record.name)
    return record


# ---------------------------------------------------------------------------
# Session operations
# ---------------------------------------------------------------------------


@reports_failure("getDocumentsVersion")
async def get_documents_version(
    channel: RemoteChannel, params: list[Any], login_data: LoginData
) -> list[DocumentsInfo]:
    """Return the server build as ``[DocumentsInfo(version=...)]``."""
    value = await channel.call_class_operation(VERSION_OPERATION, [])
    version = value[0] if value else None
    info = DocumentsInfo(
        version=str(version) if version is not None else None
    )
    logger.debug("getDocumentsVersion: %s", info.version)
    return [info]


@reports_failure("checkDecryptionPermission")
async def check_decryption_permission(
    channel: RemoteChannel, params: list[Any], login_data: LoginData
) -> list[DocumentsInfo]:
    """Return whether the client may decrypt scripts.

    The server answers ``getProperty`` with ``[error, value]``; the
    permission is granted only for the literal value ``"1"``.
    """
    value = await channel.call_class_operation(
        PROPERTY_OPERATION, ["allowDecryption"]
    )
    permitted = len(value) > 1 and value[1] == "1"
    logger.debug("checkDecryptionPermission: %s", permitted)
    return [DocumentsInfo(decryption_permission=permitted)]


@reports_failure("getScriptNamesFromServer")
async def get_script_names_from_server(
    channel: RemoteChannel, params: list[Any], login_data: LoginData
) -> list[ScriptRecord]:
    """List every script on the server, in server order."""
    names = await channel.call_class_operation(NAMES_OPERATION, [])
    return [ScriptRecord(name=str(name)) for name in names]


async def _describe(channel: RemoteChannel, record: ScriptRecord) -> Any:
    value = await channel.call_class_operation(INFO_OPERATION, [record.name])
    if not value:
        raise NotFoundError(f"could not find {record.name} on server")
    error = value[0]
    if error:
        raise DocumentsError(str(error))
    if len(value) < 2:
        raise ChannelError(f"No parameter info returned for {record.name}")
    try:
        return json.loads(value[1])
    except (TypeError, ValueError) as err:
        raise ChannelError(
            f"Invalid parameter JSON for {record.name}: {err}"
        ) from err


@reports_failure("getScriptParameters")
async def get_script_parameters(
    channel: RemoteChannel, params: list[ScriptRecord], login_data: LoginData
) -> list[Any]:
    """Return the parsed parameter description of the first record."""
    if not params:
        return []
    return [await _describe(channel, params[0])]


@reports_failure("getAllParameters")
async def get_all_parameters(
    channel: RemoteChannel, params: list[ScriptRecord], login_data: LoginData
) -> list[tuple[str, Any]]:
    """Describe every record in order; the first failure aborts."""
    described: list[tuple[str, Any]] = []
    for record in params:
        described.append((record.name, await _describe(channel, record)))
    return described


@reports_failure("getSystemUser")
async def get_system_user(
    channel: RemoteChannel, params: list[Any], login_data: LoginData
) -> list[Any]:
    """Diagnostic round trip; returns an empty list on success."""
    await channel.call_class_operation(SYSTEM_USER_OPERATION, ["test"])
    return []
