"""Content normalisation and hashing for conflict detection.

Hashes are always taken over BOM-stripped text so a byte-order mark added
by an editor never looks like a change on the server.
"""

from __future__ import annotations

import hashlib

UTF8_BOM = "\ufeff"


def ensure_no_bom(source_code: str) -> str:
    """Strip leading byte-order marks. Idempotent."""
    return source_code.lstrip(UTF8_BOM)


def ensure_bom(source_code: str) -> str:
    """Prefix a byte-order mark unless one is already present."""
    if source_code.startswith(UTF8_BOM):
        return source_code
    return UTF8_BOM + source_code


def content_hash(source_code: str | None) -> str:
    """Return the MD5 hex digest of BOM-stripped *source_code*.

    ``None`` hashes like the empty string.
    """
    normalised = ensure_no_bom(source_code or "")
    return hashlib.md5(normalised.encode("utf-8")).hexdigest()
