"""
Tests for Config File module.

Tests for sslaudit.core.config.

by BitSpectreLabs
"""

import tomllib
from pathlib import Path

import pytest

import sslaudit.core.config as config_module
from sslaudit.core.config import (
    AdvancedConfig,
    ConfigError,
    ConfigManager,
    OutputConfig,
    ScanDefaults,
    SslauditConfig,
    get_config,
    get_config_manager,
    reload_config,
)
from sslaudit.core.scanner import ScanOptions
from sslaudit.core.catalog import ProtocolVersion


ENV_VARS = [
    "SSLAUDIT_WORKERS",
    "SSLAUDIT_TIMEOUT",
    "SSLAUDIT_SCAN_TIMEOUT",
    "SSLAUDIT_VERSIONS",
    "SSLAUDIT_NO_FAILED",
    "SSLAUDIT_COLOR",
    "SSLAUDIT_VERBOSE",
    "SSLAUDIT_LOG_LEVEL",
    "SSLAUDIT_LOG_FILE",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep host environment overrides out of the tests."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture()
def manager(tmp_path) -> ConfigManager:
    return ConfigManager(
        user_config_path=tmp_path / "user" / "config.toml",
        project_config_path=tmp_path / "project" / ".sslaudit.toml",
    )


def _write(path: Path, content: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


class TestConfigDataclasses:
    """Tests for the configuration sections."""

    def test_defaults(self):
        config = SslauditConfig()
        assert config.scan.workers == 16
        assert config.scan.timeout == 5.0
        assert config.scan.scan_timeout is None
        assert config.scan.versions == []
        assert config.scan.no_failed is False
        assert config.output.color_enabled is True
        assert config.advanced.log_level == "WARNING"

    def test_round_trip_dict(self):
        config = SslauditConfig(
            scan=ScanDefaults(workers=4, versions=["SSLv3"]),
            output=OutputConfig(verbose=True),
            advanced=AdvancedConfig(log_level="DEBUG", log_file="/tmp/audit.log"),
        )
        assert SslauditConfig.from_dict(config.to_dict()) == config

    def test_from_partial_dict(self):
        config = SslauditConfig.from_dict({"scan": {"timeout": 2.5}})
        assert config.scan.timeout == 2.5
        assert config.scan.workers == 16

    def test_get_value(self):
        config = SslauditConfig()
        assert config.get_value("scan.workers") == 16
        assert config.get_value("advanced")["log_level"] == "WARNING"
        with pytest.raises(KeyError):
            config.get_value("scan.missing")

    def test_set_value_converts_strings(self):
        config = SslauditConfig()
        config.set_value("scan.workers", "8")
        config.set_value("scan.timeout", "1.5")
        config.set_value("scan.no_failed", "yes")
        config.set_value("scan.versions", "SSLv3, TLSv1")
        assert config.scan.workers == 8
        assert config.scan.timeout == 1.5
        assert config.scan.no_failed is True
        assert config.scan.versions == ["SSLv3", "TLSv1"]

    def test_set_value_errors(self):
        config = SslauditConfig()
        with pytest.raises(ValueError):
            config.set_value("workers", 1)
        with pytest.raises(KeyError):
            config.set_value("nope.workers", 1)
        with pytest.raises(KeyError):
            config.set_value("scan.nope", 1)


class TestConfigManager:
    """Tests for ConfigManager loading."""

    def test_defaults_only(self, manager):
        config = manager.load()
        assert config == SslauditConfig()
        assert manager.get_loaded_sources() == ["defaults"]

    def test_user_then_project_precedence(self, manager):
        _write(manager.user_config_path, "[scan]\nworkers = 4\ntimeout = 2.0\n")
        _write(manager.project_config_path, "[scan]\nworkers = 8\n[output]\nverbose = true\n")

        config = manager.load()

        assert config.scan.workers == 8
        assert config.scan.timeout == 2.0
        assert config.output.verbose is True
        sources = manager.get_loaded_sources()
        assert sources[0] == "defaults"
        assert sources[1].startswith("user:")
        assert sources[2].startswith("project:")

    def test_environment_overrides_files(self, manager, monkeypatch):
        _write(manager.user_config_path, "[scan]\nworkers = 4\n")
        monkeypatch.setenv("SSLAUDIT_WORKERS", "32")
        monkeypatch.setenv("SSLAUDIT_VERSIONS", "SSLv3,TLSv1")
        monkeypatch.setenv("SSLAUDIT_NO_FAILED", "on")
        monkeypatch.setenv("SSLAUDIT_LOG_LEVEL", "DEBUG")

        config = manager.load()

        assert config.scan.workers == 32
        assert config.scan.versions == ["SSLv3", "TLSv1"]
        assert config.scan.no_failed is True
        assert config.advanced.log_level == "DEBUG"
        assert manager.get_loaded_sources()[-1] == "environment"

    def test_bad_environment_value_ignored(self, manager, monkeypatch, caplog):
        monkeypatch.setenv("SSLAUDIT_TIMEOUT", "soon")
        config = manager.load()
        assert config.scan.timeout == 5.0
        assert "SSLAUDIT_TIMEOUT" in caplog.text

    def test_environment_disabled(self, tmp_path, monkeypatch):
        monkeypatch.setenv("SSLAUDIT_WORKERS", "32")
        manager = ConfigManager(
            user_config_path=tmp_path / "config.toml",
            project_config_path=tmp_path / ".sslaudit.toml",
            load_env=False,
        )
        assert manager.load().scan.workers == 16

    def test_invalid_toml(self, manager):
        _write(manager.user_config_path, "[scan\nworkers = ")
        with pytest.raises(ConfigError, match="user config"):
            manager.load()

    def test_invalid_project_toml(self, manager):
        _write(manager.project_config_path, "workers = = 1")
        with pytest.raises(ConfigError, match="project config"):
            manager.load()

    def test_project_config_found_in_parent(self, tmp_path, monkeypatch):
        _write(tmp_path / ".sslaudit.toml", "[scan]\ntimeout = 9.0\n")
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        monkeypatch.chdir(nested)

        manager = ConfigManager(user_config_path=tmp_path / "none.toml")
        assert manager.load().scan.timeout == 9.0

    def test_reload_resets_previous_values(self, manager):
        path = _write(manager.user_config_path, "[scan]\nworkers = 4\n")
        manager.load()
        path.unlink()
        assert manager.load().scan.workers == 16


class TestConfigValidation:
    """Tests for ConfigManager.validate."""

    def test_defaults_valid(self, manager):
        manager.load()
        assert manager.validate() == []

    def test_all_problems_reported(self, manager):
        _write(
            manager.user_config_path,
            "[scan]\n"
            "workers = 0\n"
            "timeout = 0\n"
            "scan_timeout = -1.0\n"
            'versions = ["TLSv1.3"]\n'
            "[advanced]\n"
            'log_level = "LOUD"\n',
        )
        manager.load()
        errors = manager.validate()
        assert len(errors) == 5
        assert any("scan.workers" in e for e in errors)
        assert any("TLSv1.3" in e for e in errors)
        assert any("log_level" in e for e in errors)

    def test_too_many_workers(self, manager):
        manager.set_value("scan.workers", 1000)
        assert manager.validate() == ["scan.workers should not exceed 256"]


class TestConfigFiles:
    """Tests for init_config and show_config."""

    def test_init_writes_parseable_defaults(self, manager, tmp_path):
        path = manager.init_config(tmp_path / "new" / "config.toml")

        with open(path, "rb") as f:
            data = tomllib.load(f)
        assert SslauditConfig.from_dict(data) == SslauditConfig()
        assert "# sslaudit Configuration File" in path.read_text()

    def test_init_without_comments(self, manager, tmp_path):
        path = manager.init_config(tmp_path / "bare.toml", include_comments=False)
        assert "#" not in path.read_text()

    def test_init_refuses_overwrite(self, manager, tmp_path):
        path = _write(tmp_path / "exists.toml", "")
        with pytest.raises(ConfigError, match="already exists"):
            manager.init_config(path)

    def test_save_user_config(self, manager):
        manager.load()
        manager.set_value("scan.scan_timeout", "45")
        manager.set_value("advanced.log_file", "/tmp/sslaudit.log")

        path = manager.save_user_config()

        assert path == manager.user_config_path
        reloaded = ConfigManager(
            user_config_path=path,
            project_config_path=manager.project_config_path,
        ).load()
        assert reloaded.scan.scan_timeout == 45.0
        assert reloaded.advanced.log_file == "/tmp/sslaudit.log"

    def test_init_default_path(self, manager):
        assert manager.init_config() == manager.user_config_path
        assert manager.user_config_path.exists()

    def test_show_config(self, manager):
        manager.load()
        text = manager.show_config()
        assert "[scan]" in text
        assert "  workers = 16" in text
        assert "  scan_timeout = (not set)" in text
        assert '  log_level = "WARNING"' in text

    def test_show_section(self, manager):
        manager.load()
        text = manager.show_config(section="output")
        assert "[output]" in text
        assert "[scan]" not in text
        with pytest.raises(ConfigError):
            manager.show_config(section="bogus")


class TestGlobalConfig:
    """Tests for the module-level accessors."""

    def test_get_config_manager_cached(self, monkeypatch, tmp_path):
        monkeypatch.setattr(config_module, "_config_manager", None)
        monkeypatch.setattr(ConfigManager, "DEFAULT_USER_CONFIG", tmp_path / "config.toml")
        monkeypatch.chdir(tmp_path)

        first = get_config_manager()
        assert get_config_manager() is first
        assert get_config() is first.get_config()

        reloaded = reload_config()
        assert isinstance(reloaded, SslauditConfig)
        assert get_config_manager() is not first


class TestScanOptionsFromConfig:
    """Tests for building scan options from loaded config."""

    def test_config_values_used(self, manager):
        _write(manager.user_config_path, '[scan]\nworkers = 2\nversions = ["TLSv1"]\nno_failed = true\n')
        options = ScanOptions.from_config(manager.load())
        assert options.max_workers == 2
        assert options.selected_versions == (ProtocolVersion.TLSv1,)
        assert options.no_failed is True

    def test_cli_overrides_win(self, manager):
        _write(manager.user_config_path, "[scan]\ntimeout = 2.0\n")
        options = ScanOptions.from_config(manager.load(), timeout=0.5, max_workers=None)
        assert options.timeout == 0.5
        assert options.max_workers == 16
