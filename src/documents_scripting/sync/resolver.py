"""Optimistic-concurrency check run immediately before an upload.

The server copy is probed and its hash compared against the record's
``last_sync_hash``.  A divergence is recorded on the record
(``conflict=True`` plus ``server_code``); it is never raised.  A script
that has vanished from the server is a conflict without ``server_code``.
Only transport failures propagate.
"""

from __future__ import annotations

import logging

from ..core.channel import RemoteChannel
from .content import content_hash, ensure_no_bom
from .models import ScriptRecord

logger = logging.getLogger(__name__)

DOWNLOAD_OPERATION = "PortalScript.downloadScript"


async def check_for_conflict(
    channel: RemoteChannel, record: ScriptRecord
) -> ScriptRecord:
    """Flag *record* as conflicted if the server copy changed since last sync.

    Nothing is probed when conflict mode is off or ``force_upload`` is set.

    Returns:
        The same record, possibly with ``conflict`` and ``server_code``
        set.

    Raises:
        ChannelError: If the probe itself fails.
    """
    if not record.conflict_mode or record.force_upload:
        return record

    value = await channel.call_class_operation(
        DOWNLOAD_OPERATION, [record.name]
    )

    if value and len(value) >= 2 and isinstance(value[0], str):
        server_code = ensure_no_bom(value[0])
        if content_hash(server_code) != record.last_sync_hash:
            record.server_code = server_code
            record.conflict = True
            logger.warning(
                "checkForConflict: %s changed on server", record.name
            )
    else:
        # Probably deleted on the server
        record.conflict = True
        logger.warning(
            "checkForConflict: %s not found on server", record.name
        )

    return record
