"""Command line client for DOCUMENTS script synchronisation.

Every command opens one session, runs one batch operation in it, and
closes the session again.  Results go to stdout; log records and errors
go to stderr.
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from . import __version__
from .config import LoginData, load_login_data
from .config_loader import discover_config_files, load_hierarchical_config
from .config_schema import UnifiedConfig, build_config, server_fallbacks
from .core.session import run_session
from .errors import DocumentsError
from .file_handler import get_script, get_scripts_from_folder
from .logger import setup_logging
from .sync.batch import download_all, run_all, upload_all
from .sync.models import ScriptRecord
from .sync.operations import (
    check_decryption_permission,
    get_all_parameters,
    get_documents_version,
    get_script_names_from_server,
)
from .sync.state import SyncState

logger = logging.getLogger(__name__)


def _stderr_print(msg: str) -> None:
    print(msg, file=sys.stderr, flush=True)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


def load_settings(
    args: argparse.Namespace,
) -> tuple[LoginData, UnifiedConfig]:
    """Resolve login data and config from CLI args, env, .env and YAML.

    Raises:
        ConfigurationError: If required login values are missing.
        ValueError: If a config file has invalid values.
    """
    load_dotenv()

    unified = UnifiedConfig()
    if discover_config_files():
        unified = build_config(load_hierarchical_config())

    login_data = load_login_data(
        server=args.server,
        port=args.port,
        username=args.username,
        password=args.password,
        principal=args.principal,
        timeout=args.timeout,
        yaml_fallbacks=server_fallbacks(unified),
    )
    return login_data, unified


def _conflict_mode(args: argparse.Namespace, unified: UnifiedConfig) -> bool:
    if getattr(args, "no_conflict_mode", False):
        return False
    return unified.scripts.conflict_mode


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


async def cmd_version(
    args: argparse.Namespace, login_data: LoginData, unified: UnifiedConfig
) -> int:
    info = await run_session(login_data, [], get_documents_version)
    print(info[0].version or "unknown")
    return 0


async def cmd_list(
    args: argparse.Namespace, login_data: LoginData, unified: UnifiedConfig
) -> int:
    records = await run_session(
        login_data, [], get_script_names_from_server
    )
    for record in records:
        print(record.name)
    return 0


def _collect_local_scripts(paths: list[str]) -> list[ScriptRecord]:
    records: list[ScriptRecord] = []
    for raw in paths:
        path = Path(raw)
        if path.is_dir():
            records.extend(get_scripts_from_folder(path))
        else:
            records.append(get_script(path))
    return records


async def cmd_upload(
    args: argparse.Namespace, login_data: LoginData, unified: UnifiedConfig
) -> int:
    records = _collect_local_scripts(args.paths)
    if not records:
        _stderr_print("No scripts found.")
        return 0

    conflict_mode = _conflict_mode(args, unified)
    for record in records:
        record.conflict_mode = conflict_mode
        record.force_upload = args.force

    state = SyncState(Path(unified.scripts.state_dir))
    state.apply(records)

    try:
        results = await run_session(login_data, records, upload_all)
    finally:
        # Records are updated in place, so scripts uploaded before an
        # aborted batch keep their new sync point
        state.record(records)
        state.save()

    conflicts = 0
    for record in results:
        if not record.conflict:
            print(f"uploaded: {record.name}")
        elif record.server_code is None:
            conflicts += 1
            print(f"conflict: {record.name} (deleted on server)")
        else:
            conflicts += 1
            print(f"conflict: {record.name} (changed on server)")

    if conflicts:
        _stderr_print(
            f"{conflicts} script(s) changed on the server since the last "
            "sync. Download them or upload again with --force."
        )
        return 1
    return 0


async def cmd_download(
    args: argparse.Namespace, login_data: LoginData, unified: UnifiedConfig
) -> int:
    out_dir = args.out or unified.scripts.root
    category_root = args.category_root or unified.scripts.category_root

    if args.names:
        records = [ScriptRecord(name=name) for name in args.names]
    else:
        records = await run_session(
            login_data, [], get_script_names_from_server
        )

    conflict_mode = _conflict_mode(args, unified)
    for record in records:
        record.path = out_dir
        record.category_root = category_root
        record.conflict_mode = conflict_mode

    state = SyncState(Path(unified.scripts.state_dir))
    try:
        results = await run_session(login_data, records, download_all)
    finally:
        state.record(records)
        state.save()

    for record in results:
        print(f"downloaded: {record.name}")

    done = {record.name for record in results}
    skipped = [r.name for r in records if r.name not in done]
    if skipped:
        _stderr_print(
            "Skipped (no decryption permission): " + ", ".join(skipped)
        )
    return 0


async def cmd_run(
    args: argparse.Namespace, login_data: LoginData, unified: UnifiedConfig
) -> int:
    records = [ScriptRecord(name=name) for name in args.names]
    results = await run_session(login_data, records, run_all)
    for record in results:
        print(f"== {record.name} ==")
        print(record.output)
    return 0


async def cmd_params(
    args: argparse.Namespace, login_data: LoginData, unified: UnifiedConfig
) -> int:
    records = [ScriptRecord(name=name) for name in args.names]
    described = await run_session(login_data, records, get_all_parameters)
    print(
        json.dumps(
            [
                {"name": name, "parameters": parameters}
                for name, parameters in described
            ],
            indent=2,
        )
    )
    return 0


async def cmd_check_decryption(
    args: argparse.Namespace, login_data: LoginData, unified: UnifiedConfig
) -> int:
    info = await run_session(login_data, [], check_decryption_permission)
    print("allowed" if info[0].decryption_permission else "denied")
    return 0


_COMMANDS: dict[str, Any] = {
    "version": cmd_version,
    "list": cmd_list,
    "upload": cmd_upload,
    "download": cmd_download,
    "run": cmd_run,
    "params": cmd_params,
    "check-decryption": cmd_check_decryption,
}


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="documents-scripting",
        description="Upload, download and run DOCUMENTS portal scripts",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Upload a folder of scripts (refuses scripts changed on the server)
  documents-scripting upload src/

  # Overwrite server copies despite conflicts
  documents-scripting upload src/crmNotify.js --force

  # Download all scripts into category subfolders
  documents-scripting download --out src --category-root src

  # Run a script and print its output
  documents-scripting run crmNotify

Connection settings come from CLI args, DOCUMENTS_* environment
variables, a .env file, or .documents_scripting/config.yml.
        """,
    )
    parser.add_argument("--server", help="Server host (DOCUMENTS_SERVER)")
    parser.add_argument(
        "--port", type=int, help="Server port (DOCUMENTS_PORT)"
    )
    parser.add_argument("--username", help="Login name (DOCUMENTS_USERNAME)")
    parser.add_argument(
        "--password",
        help="Password (DOCUMENTS_PASSWORD)"
        " (visible in process list -- prefer the env var)",
    )
    parser.add_argument(
        "--principal", help="Principal to select (DOCUMENTS_PRINCIPAL)"
    )
    parser.add_argument(
        "--timeout",
        type=float,
        help="Per-call timeout in seconds (DOCUMENTS_TIMEOUT, default 60)",
    )
    parser.add_argument(
        "--debug", action="store_true", help="Enable debug logging"
    )
    parser.add_argument("--log-file", help="Also write the log to this file")
    parser.add_argument(
        "--log-format",
        choices=["text", "json"],
        default="text",
        help="Log record format (default: text)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"documents-scripting version {__version__}",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("version", help="Print the server version")
    sub.add_parser("list", help="List script names on the server")
    sub.add_parser(
        "check-decryption", help="Check whether scripts may be decrypted"
    )

    upload = sub.add_parser("upload", help="Upload scripts")
    upload.add_argument("paths", nargs="+", help=".js files or folders")
    upload.add_argument(
        "--force",
        action="store_true",
        help="Upload even if the server copy changed since the last sync",
    )
    upload.add_argument(
        "--no-conflict-mode",
        action="store_true",
        help="Do not check the server copy before uploading",
    )

    download = sub.add_parser("download", help="Download scripts")
    download.add_argument(
        "names", nargs="*", help="Script names (default: all)"
    )
    download.add_argument("--out", help="Target folder")
    download.add_argument(
        "--category-root", help="Store scripts in category subfolders here"
    )
    download.add_argument(
        "--no-conflict-mode",
        action="store_true",
        help="Do not remember sync hashes",
    )

    run_parser = sub.add_parser("run", help="Run scripts on the server")
    run_parser.add_argument("names", nargs="+", help="Script names")

    params = sub.add_parser("params", help="Show script parameters")
    params.add_argument("names", nargs="+", help="Script names")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Parse *argv*, run the command, and return the exit code."""
    args = build_parser().parse_args(argv)

    try:
        login_data, unified = load_settings(args)
    except (DocumentsError, ValueError) as e:
        _stderr_print(f"ERROR: Configuration error: {e}")
        return 1

    setup_logging(
        debug=args.debug,
        log_file=args.log_file or unified.logging.file,
        debug_format=args.log_format,
        level=unified.logging.level,
    )

    command = _COMMANDS[args.command]
    try:
        code = asyncio.run(command(args, login_data, unified))
    except (DocumentsError, ValueError, OSError) as e:
        logger.debug("Command %s failed", args.command, exc_info=True)
        _stderr_print(f"ERROR: {e}")
        return 1

    if login_data.last_warning:
        _stderr_print(f"WARNING: {login_data.last_warning}")
    return code


def run() -> None:
    """Console script entry point."""
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(130)
