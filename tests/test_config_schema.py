"""Tests for the Pydantic config models in config_schema."""

import pytest
from pydantic import ValidationError

from documents_scripting.config_schema import (
    ScriptsConfig,
    ServerConfig,
    UnifiedConfig,
    build_config,
    server_fallbacks,
)


class TestDefaults:
    def test_unified_defaults(self):
        config = UnifiedConfig()

        assert config.server.host is None
        assert config.server.port == 11000
        assert config.scripts.root == "."
        assert config.scripts.conflict_mode is True
        assert config.scripts.state_dir == ".documents_scripting"
        assert config.logging.level == "INFO"

    def test_frozen(self):
        with pytest.raises(ValidationError):
            ScriptsConfig().root = "elsewhere"


class TestValidation:
    def test_port_range(self):
        with pytest.raises(ValidationError):
            ServerConfig(port=70000)

    def test_timeout_positive(self):
        with pytest.raises(ValidationError):
            ServerConfig(timeout=0)


class TestBuildConfig:
    def test_empty(self):
        assert build_config({}) == UnifiedConfig()

    def test_partial_sections(self):
        config = build_config(
            {
                "server": {"host": "docs", "principal": "relations"},
                "scripts": {"category_root": "src", "conflict_mode": False},
            }
        )

        assert config.server.host == "docs"
        assert config.server.principal == "relations"
        assert config.scripts.category_root == "src"
        assert config.scripts.conflict_mode is False
        assert config.logging.level == "INFO"

    def test_invalid_values(self):
        with pytest.raises(ValidationError):
            build_config({"server": {"port": "not-a-port"}})


class TestServerFallbacks:
    def test_drops_unset_values(self):
        config = build_config({"server": {"host": "docs"}})

        fallbacks = server_fallbacks(config)

        assert fallbacks == {"host": "docs", "port": 11000, "timeout": 60.0}
