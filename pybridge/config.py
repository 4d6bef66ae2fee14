"""
PyBridge Configuration Management.

Handles loading, saving, and validating configuration from various sources:
- Default values
- Configuration file (TOML)
- Environment variables
- Command-line arguments
"""

from __future__ import annotations

import json
import os
import shutil
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, List

import tomli_w
import yaml


# Configuration directory and file constants
DEFAULT_CONFIG_DIR = Path.home() / ".config" / "pybridge"
DEFAULT_CONFIG_FILE = "config.toml"
ENV_PREFIX = "PYBRIDGE_"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class ConfigIssue:
    """Validation problem found in a configuration."""
    field: str
    message: str
    severity: str  # "error" or "warning"

    def __str__(self) -> str:
        return f"[{self.severity.upper()}] {self.field}: {self.message}"


@dataclass
class InterpreterConfig:
    """Which interpreter runs bridged code, and where."""

    python: str = "python3"
    cwd: Optional[Path] = None  # Host working directory if None

    # Prefer venv/bin or .venv/bin found above cwd
    use_venv: bool = True

    # Environment passed to the subprocess
    inherit_env: bool = True
    env_vars: dict[str, str] = field(default_factory=dict)


@dataclass
class BridgeSettings:
    """Timeouts and startup behaviour of bridge sessions."""

    startup_timeout: float = 30.0
    request_timeout: Optional[float] = None  # Wait forever if None
    shutdown_timeout: float = 5.0
    wait_for_ready: bool = False


@dataclass
class LoggingConfig:
    """Configuration for logging."""

    level: str = "WARNING"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file: Optional[Path] = None


@dataclass
class PyBridgeConfig:
    """Main configuration container for PyBridge."""

    config_dir: Path = DEFAULT_CONFIG_DIR

    interpreter: InterpreterConfig = field(default_factory=InterpreterConfig)
    bridge: BridgeSettings = field(default_factory=BridgeSettings)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @property
    def config_path(self) -> Path:
        return self.config_dir / DEFAULT_CONFIG_FILE


def _parse_bool(value: str) -> bool:
    return value.lower() in ("true", "1", "yes", "on")


def _parse_optional_float(value: str) -> Optional[float]:
    if value.lower() in ("", "none", "null", "0"):
        return None
    return float(value)


def default_config_path(env_prefix: str = ENV_PREFIX) -> Path:
    """Config file location, honouring the CONFIG_DIR environment override."""
    env_config_dir = os.environ.get(f"{env_prefix}CONFIG_DIR")
    if env_config_dir:
        return Path(env_config_dir) / DEFAULT_CONFIG_FILE
    return DEFAULT_CONFIG_DIR / DEFAULT_CONFIG_FILE


def load_config(
    config_path: Optional[Path] = None,
    env_prefix: str = ENV_PREFIX
) -> PyBridgeConfig:
    """
    Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables
    2. Config file
    3. Default values

    Args:
        config_path: Path to config file (default: ~/.config/pybridge/config.toml)
        env_prefix: Prefix for environment variables

    Returns:
        Loaded configuration
    """
    config = PyBridgeConfig()

    if config_path is None:
        config_path = default_config_path(env_prefix)
    config.config_dir = config_path.parent

    if config_path.exists():
        config = _load_from_file(config_path, config)

    return _load_from_env(config, env_prefix)


def _apply_section(target: Any, values: dict[str, Any]) -> None:
    for key, value in values.items():
        if not hasattr(target, key):
            continue
        if key in ("cwd", "file") and value:
            value = Path(value)
        elif key in ("cwd", "file", "request_timeout") and value in ("", 0):
            value = None
        setattr(target, key, value)


def _load_from_file(path: Path, config: PyBridgeConfig) -> PyBridgeConfig:
    """Load configuration from a TOML file."""
    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        print(f"Warning: Failed to load config from {path}: {e}")
        return config

    for section in ("interpreter", "bridge", "logging"):
        if isinstance(data.get(section), dict):
            _apply_section(getattr(config, section), data[section])

    env_vars = data.get("interpreter", {}).get("env_vars")
    if isinstance(env_vars, dict):
        config.interpreter.env_vars = {str(k): str(v) for k, v in env_vars.items()}

    if "config_dir" in data:
        config.config_dir = Path(data["config_dir"])

    return config


def _load_from_env(config: PyBridgeConfig, prefix: str) -> PyBridgeConfig:
    """Load configuration from environment variables."""

    # Interpreter settings
    if env_val := os.environ.get(f"{prefix}PYTHON"):
        config.interpreter.python = env_val
    if env_val := os.environ.get(f"{prefix}CWD"):
        config.interpreter.cwd = Path(env_val)
    if env_val := os.environ.get(f"{prefix}USE_VENV"):
        config.interpreter.use_venv = _parse_bool(env_val)

    # Bridge settings
    if env_val := os.environ.get(f"{prefix}STARTUP_TIMEOUT"):
        config.bridge.startup_timeout = float(env_val)
    if env_val := os.environ.get(f"{prefix}REQUEST_TIMEOUT"):
        config.bridge.request_timeout = _parse_optional_float(env_val)
    if env_val := os.environ.get(f"{prefix}SHUTDOWN_TIMEOUT"):
        config.bridge.shutdown_timeout = float(env_val)
    if env_val := os.environ.get(f"{prefix}WAIT_FOR_READY"):
        config.bridge.wait_for_ready = _parse_bool(env_val)

    # Logging settings
    if env_val := os.environ.get(f"{prefix}LOG_LEVEL"):
        config.logging.level = env_val.upper()

    # Paths
    if env_val := os.environ.get(f"{prefix}CONFIG_DIR"):
        config.config_dir = Path(env_val)

    return config


def _config_to_dict(config: PyBridgeConfig) -> dict[str, Any]:
    """
    Convert configuration to a plain dictionary.

    Paths become strings; unset optional values become None.
    """
    return {
        "config_dir": str(config.config_dir),
        "interpreter": {
            "python": config.interpreter.python,
            "cwd": str(config.interpreter.cwd) if config.interpreter.cwd else None,
            "use_venv": config.interpreter.use_venv,
            "inherit_env": config.interpreter.inherit_env,
            "env_vars": dict(config.interpreter.env_vars),
        },
        "bridge": {
            "startup_timeout": config.bridge.startup_timeout,
            "request_timeout": config.bridge.request_timeout,
            "shutdown_timeout": config.bridge.shutdown_timeout,
            "wait_for_ready": config.bridge.wait_for_ready,
        },
        "logging": {
            "level": config.logging.level,
            "format": config.logging.format,
            "file": str(config.logging.file) if config.logging.file else None,
        },
    }


def save_config(config: PyBridgeConfig, path: Optional[Path] = None) -> Path:
    """
    Save configuration to a TOML file.

    TOML has no null, so unset optional values are omitted.

    Args:
        config: Configuration to save
        path: Path to save to (default: config.config_dir / config.toml)

    Returns:
        The path written
    """
    if path is None:
        path = config.config_path

    path.parent.mkdir(parents=True, exist_ok=True)

    data = _config_to_dict(config)
    data.pop("config_dir")
    for section in data.values():
        for key in [k for k, v in section.items() if v is None]:
            del section[key]

    with open(path, "wb") as f:
        tomli_w.dump(data, f)
    return path


# Global configuration instance (lazy-loaded)
_global_config: Optional[PyBridgeConfig] = None


def get_config() -> PyBridgeConfig:
    """Get the global configuration instance."""
    global _global_config
    if _global_config is None:
        _global_config = load_config()
    return _global_config


def set_config(config: PyBridgeConfig) -> None:
    """Set the global configuration instance."""
    global _global_config
    _global_config = config


def clear_config_cache() -> None:
    """Clear the global configuration cache."""
    global _global_config
    _global_config = None


# Field types for values that may currently be None
_OPTIONAL_FIELD_TYPES: dict[tuple[str, str], type] = {
    ("interpreter", "cwd"): Path,
    ("bridge", "request_timeout"): float,
    ("logging", "file"): Path,
}


def set_config_value(section: str, key: str, value: str, config_path: Optional[Path] = None) -> None:
    """
    Set a single configuration value and persist to file.

    Args:
        section: Configuration section (interpreter, bridge, logging)
        key: Configuration key within the section
        value: Value to set (converted to the field's type)
        config_path: Path to config file (default: from environment or ~/.config)

    Raises:
        ValueError: If the section or key is unknown, or the value cannot be converted
    """
    if config_path is None:
        config_path = default_config_path()

    config = load_config(config_path)

    section_obj = getattr(config, section, None)
    if section_obj is None or section not in ("interpreter", "bridge", "logging"):
        raise ValueError(f"Unknown configuration section: {section}")

    if not hasattr(section_obj, key) or key == "env_vars":
        raise ValueError(f"Unknown configuration key: {section}.{key}")

    current_value = getattr(section_obj, key)
    current_type = _OPTIONAL_FIELD_TYPES.get((section, key), type(current_value))

    if value.lower() in ("", "none", "null") and (section, key) in _OPTIONAL_FIELD_TYPES:
        converted_value: Any = None
    elif current_type == bool:
        converted_value = _parse_bool(value)
    elif current_type == int:
        converted_value = int(value)
    elif current_type == float:
        converted_value = float(value)
    elif current_type == Path:
        converted_value = Path(value)
    else:
        converted_value = value

    setattr(section_obj, key, converted_value)
    save_config(config, config_path)


def validate_config(config: Optional[PyBridgeConfig] = None) -> List[ConfigIssue]:
    """
    Validate configuration and return list of issues.

    Args:
        config: Configuration to validate (default: loaded from file)

    Returns:
        List of issues (empty if valid)
    """
    if config is None:
        config = load_config()

    issues: List[ConfigIssue] = []

    python = config.interpreter.python
    if os.path.isabs(python):
        if not os.path.exists(python):
            issues.append(ConfigIssue(
                field="interpreter.python",
                message=f"Interpreter does not exist: {python}",
                severity="error"
            ))
    elif shutil.which(python) is None:
        issues.append(ConfigIssue(
            field="interpreter.python",
            message=f"Interpreter '{python}' not found on PATH (a virtualenv may still provide it)",
            severity="warning"
        ))

    if config.interpreter.cwd is not None and not config.interpreter.cwd.is_dir():
        issues.append(ConfigIssue(
            field="interpreter.cwd",
            message=f"Working directory does not exist: {config.interpreter.cwd}",
            severity="error"
        ))

    for name in ("startup_timeout", "shutdown_timeout"):
        if getattr(config.bridge, name) <= 0:
            issues.append(ConfigIssue(
                field=f"bridge.{name}",
                message="Timeout must be positive",
                severity="error"
            ))

    if config.bridge.request_timeout is not None and config.bridge.request_timeout <= 0:
        issues.append(ConfigIssue(
            field="bridge.request_timeout",
            message="Timeout must be positive (unset it to wait forever)",
            severity="error"
        ))

    if config.logging.level.upper() not in LOG_LEVELS:
        issues.append(ConfigIssue(
            field="logging.level",
            message=f"Unknown log level: {config.logging.level}",
            severity="error"
        ))

    if not config.config_dir.exists():
        issues.append(ConfigIssue(
            field="config_dir",
            message=f"Config directory does not exist: {config.config_dir}",
            severity="warning"
        ))

    return issues


def export_config_yaml(config: PyBridgeConfig) -> str:
    """Export configuration as YAML string."""
    return yaml.dump(_config_to_dict(config), default_flow_style=False, sort_keys=False, allow_unicode=True)


def export_config_json(config: PyBridgeConfig) -> str:
    """Export configuration as JSON string."""
    return json.dumps(_config_to_dict(config), indent=2)
