"""Unified configuration schema for documents_scripting.

Pydantic models for the YAML config structure with dedicated sections for
the server connection, the local script tree, and logging.

Usage:
    from documents_scripting.config_schema import (
        UnifiedConfig, build_config, server_fallbacks,
    )

    raw = load_hierarchical_config()
    unified = build_config(raw)
    login_data = load_login_data(yaml_fallbacks=server_fallbacks(unified))
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class ServerConfig(BaseModel):
    """DOCUMENTS server connection settings.

    All fields are optional: env vars and CLI args can supply them at
    runtime instead.
    """

    host: str | None = Field(default=None, description="Server host")
    port: int = Field(
        default=11000, ge=1, le=65535, description="Server port"
    )
    username: str | None = Field(default=None, description="Login name")
    password: str | None = Field(default=None, description="Password")
    principal: str | None = Field(
        default=None, description="Principal selected after login"
    )
    timeout: float = Field(
        default=60.0, gt=0, description="Per-call timeout in seconds"
    )

    model_config = {"frozen": True}


class ScriptsConfig(BaseModel):
    """Local script tree settings.

    Attributes:
        root: Directory scripts are downloaded into by default.
        category_root: Root for category subfolders; ``None`` disables
            category placement.
        conflict_mode: Enable hash-based conflict detection on upload.
        state_dir: Where last-sync hashes are persisted.
    """

    root: str = Field(default=".", description="Default script folder")
    category_root: str | None = Field(
        default=None, description="Root folder for category subfolders"
    )
    conflict_mode: bool = Field(
        default=True, description="Detect server-side changes on upload"
    )
    state_dir: str = Field(
        default=".documents_scripting",
        description="Directory for the sync state file",
    )

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    model_config = {"frozen": True}


class UnifiedConfig(BaseModel):
    """Top-level configuration. ``UnifiedConfig()`` is always valid."""

    server: ServerConfig = Field(default_factory=ServerConfig)
    scripts: ScriptsConfig = Field(default_factory=ScriptsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Factory and adapter
# ---------------------------------------------------------------------------


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the merged YAML dict.

    Missing sections get defaults.

    Raises:
        pydantic.ValidationError: If a section has invalid values.
    """
    if not raw_data:
        return UnifiedConfig()

    return UnifiedConfig(**raw_data)


def server_fallbacks(unified: UnifiedConfig) -> dict[str, Any]:
    """Return the non-None ``server`` values for ``load_login_data()``."""
    return {
        k: v
        for k, v in unified.server.model_dump().items()
        if v is not None
    }
