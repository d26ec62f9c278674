"""
Configuration File Support for sslaudit.

Provides TOML-based configuration management:
- Default config location (~/.sslaudit/config.toml)
- Project-level config (.sslaudit.toml)
- Environment variable overrides
- Config validation and error messages
- Config generation and display commands

by BitSpectreLabs
"""

import os
import logging
import tomllib
from pathlib import Path
from dataclasses import dataclass, field, asdict
from typing import Optional, Dict, Any, List

from sslaudit.core.catalog import ProtocolVersion


logger = logging.getLogger(__name__)

VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


@dataclass
class ScanDefaults:
    """Default scan configuration."""
    workers: int = 16
    timeout: float = 5.0
    scan_timeout: Optional[float] = None
    versions: List[str] = field(default_factory=list)
    no_failed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScanDefaults":
        """Create from dictionary."""
        return cls(
            workers=data.get("workers", 16),
            timeout=data.get("timeout", 5.0),
            scan_timeout=data.get("scan_timeout"),
            versions=list(data.get("versions", [])),
            no_failed=data.get("no_failed", False),
        )


@dataclass
class OutputConfig:
    """Output configuration."""
    verbose: bool = False
    color_enabled: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OutputConfig":
        return cls(
            verbose=data.get("verbose", False),
            color_enabled=data.get("color_enabled", True),
        )


@dataclass
class AdvancedConfig:
    """Advanced configuration."""
    log_level: str = "WARNING"
    log_file: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AdvancedConfig":
        return cls(
            log_level=data.get("log_level", "WARNING"),
            log_file=data.get("log_file"),
        )


@dataclass
class SslauditConfig:
    """
    Complete sslaudit configuration.

    Contains all configuration sections.
    """
    scan: ScanDefaults = field(default_factory=ScanDefaults)
    output: OutputConfig = field(default_factory=OutputConfig)
    advanced: AdvancedConfig = field(default_factory=AdvancedConfig)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "scan": self.scan.to_dict(),
            "output": self.output.to_dict(),
            "advanced": self.advanced.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SslauditConfig":
        """Create from dictionary."""
        return cls(
            scan=ScanDefaults.from_dict(data.get("scan", {})),
            output=OutputConfig.from_dict(data.get("output", {})),
            advanced=AdvancedConfig.from_dict(data.get("advanced", {})),
        )

    def get_value(self, key_path: str) -> Any:
        """
        Get a configuration value by dot-separated path.

        Args:
            key_path: Dot-separated path (e.g., "scan.workers")

        Returns:
            Configuration value
        """
        obj: Any = self.to_dict()
        for part in key_path.split("."):
            if not isinstance(obj, dict) or part not in obj:
                raise KeyError(f"Configuration key not found: {key_path}")
            obj = obj[part]
        return obj

    def set_value(self, key_path: str, value: Any) -> None:
        """
        Set a configuration value by dot-separated path.

        String values are converted to the type of the current value.
        """
        parts = key_path.split(".")
        if len(parts) != 2:
            raise ValueError(f"Invalid key path: {key_path}")

        section, key = parts
        if not hasattr(self, section):
            raise KeyError(f"Configuration section not found: {section}")

        section_obj = getattr(self, section)
        if not hasattr(section_obj, key):
            raise KeyError(f"Configuration key not found: {key_path}")

        current_value = getattr(section_obj, key)
        if current_value is not None:
            if isinstance(current_value, bool):
                value = str(value).lower() in ("true", "1", "yes")
            elif isinstance(current_value, int):
                value = int(value)
            elif isinstance(current_value, float):
                value = float(value)
            elif isinstance(current_value, list) and isinstance(value, str):
                value = [v.strip() for v in value.split(",") if v.strip()]
        elif key_path == "scan.scan_timeout" and value is not None:
            value = float(value)
        setattr(section_obj, key, value)


class ConfigError(Exception):
    """Configuration error."""
    pass


class ConfigManager:
    """
    Configuration file manager.

    Handles loading and saving configuration from multiple sources:
    1. Built-in defaults
    2. User config (~/.sslaudit/config.toml)
    3. Project config (.sslaudit.toml)
    4. Environment variables (SSLAUDIT_*)
    5. CLI arguments (highest priority, applied by the caller)
    """

    DEFAULT_USER_CONFIG = Path.home() / ".sslaudit" / "config.toml"
    PROJECT_CONFIG_NAME = ".sslaudit.toml"
    ENV_PREFIX = "SSLAUDIT_"

    def __init__(
        self,
        user_config_path: Optional[Path] = None,
        project_config_path: Optional[Path] = None,
        load_env: bool = True
    ):
        """
        Initialize ConfigManager.

        Args:
            user_config_path: Custom user config path
            project_config_path: Custom project config path
            load_env: Whether to load from environment variables
        """
        self.user_config_path = Path(user_config_path) if user_config_path else self.DEFAULT_USER_CONFIG
        self.project_config_path = Path(project_config_path) if project_config_path else None
        self.load_env = load_env

        self._config = SslauditConfig()
        self._loaded_sources: List[str] = ["defaults"]

    def load(self) -> SslauditConfig:
        """
        Load configuration from all sources.

        Returns:
            Merged SslauditConfig

        Raises:
            ConfigError: if a config file exists but cannot be parsed
        """
        self._config = SslauditConfig()
        self._loaded_sources = ["defaults"]

        if self.user_config_path.exists():
            try:
                self._load_toml_file(self.user_config_path)
            except (OSError, tomllib.TOMLDecodeError, TypeError, ValueError) as e:
                raise ConfigError(f"Error loading user config: {e}") from e
            self._loaded_sources.append(f"user:{self.user_config_path}")

        project_config = self._find_project_config()
        if project_config and project_config.exists():
            try:
                self._load_toml_file(project_config)
            except (OSError, tomllib.TOMLDecodeError, TypeError, ValueError) as e:
                raise ConfigError(f"Error loading project config: {e}") from e
            self._loaded_sources.append(f"project:{project_config}")

        if self.load_env:
            self._load_environment()

        logger.debug(f"Configuration loaded from: {', '.join(self._loaded_sources)}")
        return self._config

    def get_config(self) -> SslauditConfig:
        """Get current configuration."""
        return self._config

    def get_loaded_sources(self) -> List[str]:
        """Get list of loaded configuration sources."""
        return self._loaded_sources.copy()

    def save_user_config(
        self,
        config: Optional[SslauditConfig] = None,
        path: Optional[Path] = None
    ) -> Path:
        """
        Save configuration to user config file.

        Args:
            config: Configuration to save (uses current if None)
            path: Custom path (uses default if None)

        Returns:
            Path to saved config file
        """
        config = config or self._config
        path = Path(path) if path else self.user_config_path

        path.parent.mkdir(parents=True, exist_ok=True)
        content = self._generate_toml(config)

        with open(path, "w") as f:
            f.write(content)

        return path

    def init_config(
        self,
        path: Optional[Path] = None,
        include_comments: bool = True
    ) -> Path:
        """
        Initialize a new configuration file with defaults.

        Raises:
            ConfigError: if the file already exists
        """
        path = Path(path) if path else self.user_config_path

        if path.exists():
            raise ConfigError(f"Config file already exists: {path}")

        content = self._generate_toml(SslauditConfig(), include_comments=include_comments)

        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            f.write(content)

        return path

    def get_value(self, key_path: str) -> Any:
        """Get a configuration value by dot-separated path."""
        return self._config.get_value(key_path)

    def set_value(self, key_path: str, value: Any) -> None:
        """Set a configuration value by dot-separated path."""
        self._config.set_value(key_path, value)

    def show_config(self, section: Optional[str] = None) -> str:
        """
        Generate a display string for configuration.

        Args:
            section: Specific section to show (shows all if None)
        """
        config_dict = self._config.to_dict()

        if section:
            if section not in config_dict:
                raise ConfigError(f"Unknown section: {section}")
            config_dict = {section: config_dict[section]}

        return self._format_config_display(config_dict)

    def validate(self) -> List[str]:
        """
        Validate current configuration.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []
        scan = self._config.scan

        if scan.workers < 1:
            errors.append("scan.workers must be at least 1")
        if scan.workers > 256:
            errors.append("scan.workers should not exceed 256")

        if scan.timeout <= 0:
            errors.append("scan.timeout must be positive")

        if scan.scan_timeout is not None and scan.scan_timeout <= 0:
            errors.append("scan.scan_timeout must be positive")

        for version in scan.versions:
            try:
                ProtocolVersion.parse(version)
            except ValueError:
                valid = ", ".join(v.value for v in ProtocolVersion)
                errors.append(f"scan.versions: unknown version {version!r} (expected {valid})")

        if self._config.advanced.log_level.upper() not in VALID_LOG_LEVELS:
            errors.append(f"advanced.log_level must be one of: {', '.join(VALID_LOG_LEVELS)}")

        return errors

    def _find_project_config(self) -> Optional[Path]:
        """Find project config file by walking up directory tree."""
        if self.project_config_path:
            return self.project_config_path

        current = Path.cwd()
        while current != current.parent:
            config_path = current / self.PROJECT_CONFIG_NAME
            if config_path.exists():
                return config_path
            current = current.parent

        return None

    def _load_toml_file(self, path: Path) -> None:
        """Load and merge a TOML config file."""
        with open(path, "rb") as f:
            data = tomllib.load(f)

        self._merge_config(data)

    def _merge_config(self, data: Dict[str, Any]) -> None:
        """Merge loaded config data into current config."""
        if "scan" in data:
            self._config.scan = ScanDefaults.from_dict({
                **self._config.scan.to_dict(),
                **data["scan"]
            })

        if "output" in data:
            self._config.output = OutputConfig.from_dict({
                **self._config.output.to_dict(),
                **data["output"]
            })

        if "advanced" in data:
            self._config.advanced = AdvancedConfig.from_dict({
                **self._config.advanced.to_dict(),
                **data["advanced"]
            })

    def _load_environment(self) -> None:
        """Load configuration from environment variables."""
        env_mappings = {
            # Scan settings
            f"{self.ENV_PREFIX}WORKERS": ("scan", "workers", int),
            f"{self.ENV_PREFIX}TIMEOUT": ("scan", "timeout", float),
            f"{self.ENV_PREFIX}SCAN_TIMEOUT": ("scan", "scan_timeout", float),
            f"{self.ENV_PREFIX}VERSIONS": ("scan", "versions", self._parse_list),
            f"{self.ENV_PREFIX}NO_FAILED": ("scan", "no_failed", self._parse_bool),

            # Output
            f"{self.ENV_PREFIX}COLOR": ("output", "color_enabled", self._parse_bool),
            f"{self.ENV_PREFIX}VERBOSE": ("output", "verbose", self._parse_bool),

            # Advanced
            f"{self.ENV_PREFIX}LOG_LEVEL": ("advanced", "log_level", str),
            f"{self.ENV_PREFIX}LOG_FILE": ("advanced", "log_file", str),
        }

        for env_var, (section, key, converter) in env_mappings.items():
            value = os.environ.get(env_var)
            if value is None:
                continue
            try:
                converted = converter(value)
            except (ValueError, TypeError):
                logger.warning(f"Ignoring {env_var}={value!r}: not a valid {key}")
                continue
            setattr(getattr(self._config, section), key, converted)
            if "environment" not in self._loaded_sources:
                self._loaded_sources.append("environment")

    @staticmethod
    def _parse_bool(value: str) -> bool:
        """Parse boolean from string."""
        return value.lower() in ("true", "1", "yes", "on")

    @staticmethod
    def _parse_list(value: str) -> List[str]:
        return [v.strip() for v in value.split(",") if v.strip()]

    def _generate_toml(
        self,
        config: SslauditConfig,
        include_comments: bool = True
    ) -> str:
        """Generate TOML content from config."""
        lines = []

        if include_comments:
            lines.extend([
                "# sslaudit Configuration File",
                "# Generated by sslaudit",
                "",
                "# Scan defaults",
                "# These settings apply to all scans unless overridden by CLI options",
            ])
        lines.append("[scan]")
        lines.append(f"workers = {config.scan.workers}")
        lines.append(f"timeout = {config.scan.timeout}")
        if config.scan.scan_timeout:
            lines.append(f"scan_timeout = {config.scan.scan_timeout}")
        elif include_comments:
            lines.append("# scan_timeout = 120.0")
        versions_str = ", ".join(f'"{v}"' for v in config.scan.versions)
        if include_comments:
            lines.append("# Empty list probes SSLv2, SSLv3 and TLSv1")
        lines.append(f"versions = [{versions_str}]")
        lines.append(f"no_failed = {str(config.scan.no_failed).lower()}")
        lines.append("")

        if include_comments:
            lines.append("# Output settings")
        lines.append("[output]")
        lines.append(f"verbose = {str(config.output.verbose).lower()}")
        lines.append(f"color_enabled = {str(config.output.color_enabled).lower()}")
        lines.append("")

        if include_comments:
            lines.append("# Advanced settings")
        lines.append("[advanced]")
        lines.append(f'log_level = "{config.advanced.log_level}"')
        if config.advanced.log_file:
            lines.append(f'log_file = "{config.advanced.log_file}"')
        lines.append("")

        return "\n".join(lines)

    def _format_config_display(self, config_dict: Dict[str, Any], indent: int = 0) -> str:
        """Format config dictionary for display."""
        lines = []
        prefix = "  " * indent

        for key, value in config_dict.items():
            if isinstance(value, dict):
                lines.append(f"{prefix}[{key}]")
                lines.append(self._format_config_display(value, indent + 1))
            elif isinstance(value, list):
                list_str = ", ".join(str(v) for v in value)
                lines.append(f"{prefix}{key} = [{list_str}]")
            elif isinstance(value, str):
                lines.append(f'{prefix}{key} = "{value}"')
            elif isinstance(value, bool):
                lines.append(f"{prefix}{key} = {str(value).lower()}")
            elif value is None:
                lines.append(f"{prefix}{key} = (not set)")
            else:
                lines.append(f"{prefix}{key} = {value}")

        return "\n".join(lines)


# Global config manager instance
_config_manager: Optional[ConfigManager] = None


def get_config_manager() -> ConfigManager:
    """Get or create global config manager."""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager()
        _config_manager.load()
    return _config_manager


def get_config() -> SslauditConfig:
    """Get current configuration."""
    return get_config_manager().get_config()


def reload_config() -> SslauditConfig:
    """Reload configuration from all sources."""
    global _config_manager
    _config_manager = ConfigManager()
    return _config_manager.load()
