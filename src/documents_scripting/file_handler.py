"""Local script files: encoding-aware read, UTF-8 write, folder scanning.

Scripts are stored one per file as ``<root>/[<category>/]<name>.js``.
Byte-order marks are stripped on read and never written back.
Async wrappers run the blocking I/O via ``run_sync()``.
"""

import logging
from pathlib import Path

from charset_normalizer import from_bytes

from .core.async_utils import run_sync
from .sync.content import ensure_no_bom
from .sync.models import ScriptRecord

logger = logging.getLogger(__name__)

SCRIPT_SUFFIX = ".js"


# =============================================================================
# Paths
# =============================================================================


def script_target_path(
    root: str | Path, name: str, category: str | None = None
) -> Path:
    """Return ``<root>/[<category>/]<name>.js``."""
    base = Path(root)
    if category:
        base = base / category
    return base / f"{name}{SCRIPT_SUFFIX}"


# =============================================================================
# File Read/Write
# =============================================================================


def read_script_file(path: Path) -> str:
    """Read a script with automatic encoding detection, BOM stripped.

    Uses charset-normalizer; falls back to UTF-8 for empty files or when
    detection fails.
    """
    raw = Path(path).read_bytes()
    if not raw:
        return ""

    result = from_bytes(raw).best()
    if result is None:
        content = raw.decode("utf-8", errors="replace")
    else:
        content = str(result)
    return ensure_no_bom(content)


def write_script_file(path: Path, content: str) -> int:
    """Write *content* as UTF-8 without BOM, creating parent directories.

    Returns:
        Number of bytes written.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    encoded = ensure_no_bom(content).encode("utf-8")
    path.write_bytes(encoded)
    logger.debug("Wrote %s (%d bytes)", path, len(encoded))
    return len(encoded)


async def write_script_file_async(path: Path, content: str) -> int:
    """Async wrapper around ``write_script_file()``."""
    return await run_sync(write_script_file, path, content)


# =============================================================================
# Folder scanning
# =============================================================================


def list_script_files(
    directory: str | Path, recursive: bool = True
) -> list[Path]:
    """Return all regular files in *directory*, sorted.

    Raises:
        ValueError: If *directory* is not a directory.
    """
    root = Path(directory)
    if not root.is_dir():
        raise ValueError(f"Not a directory: {directory}")
    pattern = root.rglob("*") if recursive else root.glob("*")
    return sorted(p for p in pattern if p.is_file())


def get_script(file: str | Path) -> ScriptRecord:
    """Build a ``ScriptRecord`` from a single ``.js`` file.

    Raises:
        ValueError: If the file is not a javascript file.
        OSError: If the file cannot be read.
    """
    path = Path(file)
    if path.suffix != SCRIPT_SUFFIX:
        raise ValueError(f"only javascript files allowed: {file}")
    return ScriptRecord(
        name=path.stem,
        path=str(path.parent),
        source_code=read_script_file(path),
    )


def get_scripts_from_folder(
    directory: str | Path, subfolders: bool = True
) -> list[ScriptRecord]:
    """Build one ``ScriptRecord`` per ``.js`` file under *directory*."""
    return [
        get_script(path)
        for path in list_script_files(directory, recursive=subfolders)
        if path.suffix == SCRIPT_SUFFIX
    ]
