"""Sequential batch processing over one session channel.

``run_batch`` applies a single-record operation to each record in order,
waiting for one to finish before starting the next.  Results accumulate
in processing order.  After a failure the batch's ``skip_error`` policy
decides: skip that record and continue, or abort the whole batch.  Work
already done on the server for earlier records is not rolled back.

Policies in use:

- ``abort_all``: upload and run batches.
- ``skip_permission_denied``: download batches; records the client may not
  decrypt are left out of the result and the batch continues.

Conflicts are recorded on the record and never abort an upload batch.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Sequence

from ..config import LoginData
from ..core.channel import RemoteChannel
from ..errors import PermissionDeniedError
from .models import ScriptRecord
from .operations import download_script, run_script, upload_script

logger = logging.getLogger(__name__)

SingleOperation = Callable[
    [RemoteChannel, ScriptRecord, LoginData], Awaitable[ScriptRecord]
]
SkipPolicy = Callable[[Exception], bool]


def abort_all(error: Exception) -> bool:
    """Never skip: every failure aborts the batch."""
    return False


def skip_permission_denied(error: Exception) -> bool:
    """Skip records whose download was refused for lack of decrypt permission."""
    return isinstance(error, PermissionDeniedError)


async def run_batch(
    channel: RemoteChannel,
    records: Sequence[ScriptRecord],
    single_op: SingleOperation,
    login_data: LoginData,
    skip_error: SkipPolicy = abort_all,
) -> list[ScriptRecord]:
    """Apply *single_op* to *records* one at a time, in order.

    Args:
        channel: The session's channel, shared by every call.
        records: Records to process.
        single_op: Operation applied to each record.
        login_data: Session facts passed through to *single_op*.
        skip_error: Returns True for failures that only drop the current
            record; any other failure aborts the batch.

    Returns:
        Successfully processed records in processing order.

    Raises:
        Exception: The first failure *skip_error* does not accept.
    """
    results: list[ScriptRecord] = []
    for index, record in enumerate(records):
        try:
            processed = await single_op(channel, record, login_data)
        except Exception as err:
            if not skip_error(err):
                logger.debug(
                    "Batch aborted at %d/%d (%s): %s",
                    index + 1,
                    len(records),
                    record.name,
                    err,
                )
                raise
            logger.warning("Skipping %s: %s", record.name, err)
            continue
        results.append(processed)
    return results


async def upload_all(
    channel: RemoteChannel,
    params: list[Any],
    login_data: LoginData,
) -> list[ScriptRecord]:
    """Upload every record; the first failure aborts the batch."""
    return await run_batch(channel, params, upload_script, login_data)


async def download_all(
    channel: RemoteChannel,
    params: list[Any],
    login_data: LoginData,
) -> list[ScriptRecord]:
    """Download every record, leaving out those that may not be decrypted."""
    return await run_batch(
        channel,
        params,
        download_script,
        login_data,
        skip_error=skip_permission_denied,
    )


async def run_all(
    channel: RemoteChannel,
    params: list[Any],
    login_data: LoginData,
) -> list[ScriptRecord]:
    """Run every record on the server; the first failure aborts the batch."""
    return await run_batch(channel, params, run_script, login_data)
