"""
Configuration management for noxium.

Loads and validates the noxium YAML configuration file. Every key is
optional; missing keys fall back to DEFAULTS.

Example config.yaml:

    orchestrator:
      default_timeout_s: 300
      cancel_grace_s: 5
      shutdown_grace_s: 30
      replace_capabilities: false
      detect_output_conflicts: true
      cleanup_on_failure: false
      result_cache_size: 256
    backends:
      typescript_compile:
        command: [tsc, "{input}", --outFile, "{output}"]
      minify:
        command: [terser, "{input}", -o, "{output}", --compress, --mangle]
      wasm_transform:
        command: [wat2wasm, "{input}", -o, "{output}"]
        formats: [.wat, .wast]
    logging:
      level: INFO
      format: pretty
      output: logs/noxium-{date}.log
      console: true
"""

import copy
import os
import shlex
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from noxium.errors import ConfigError
from noxium.schemas import JobKind

DEFAULTS: Dict[str, Any] = {
    "orchestrator": {
        "default_timeout_s": 300,
        "cancel_grace_s": 5,
        "shutdown_grace_s": 30,
        "replace_capabilities": False,
        "detect_output_conflicts": True,
        "cleanup_on_failure": False,
        "result_cache_size": 256,
    },
    "backends": {
        "typescript_compile": {"command": ["esbuild", "{input}", "--outfile={output}"]},
        "regex_transform": {},
        "minify": {"command": ["esbuild", "{input}", "--minify", "--outfile={output}"]},
        "bundle": {"banner": True},
        "wasm_transform": {
            "command": ["wat2wasm", "{input}", "-o", "{output}"],
            "formats": [".wat", ".wast", ".wasm"],
        },
    },
    "logging": {
        "level": "INFO",
        "format": "pretty",
        "output": None,
        "console": True,
    },
}

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def get_noxium_home() -> Path:
    """Directory holding the user config ($NOXIUM_HOME or ~/.noxium)."""
    return Path(os.environ.get("NOXIUM_HOME", Path.home() / ".noxium")).expanduser()


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class NoxiumConfig:
    """Complete noxium configuration."""

    def __init__(self, data: Optional[Dict[str, Any]] = None, config_path: Optional[Path] = None):
        self.config_path = config_path
        if data is not None and not isinstance(data, dict):
            raise ConfigError(f"Configuration must be a mapping, got {type(data).__name__}")
        self.raw_config = _merge(DEFAULTS, data or {})

        self.orchestrator: Dict[str, Any] = self.raw_config.get("orchestrator") or {}
        self.backends: Dict[str, Any] = {}
        for name, settings in (self.raw_config.get("backends") or {}).items():
            try:
                kind = JobKind.parse(name)
            except ValueError:
                raise ConfigError(f"backends: unknown job kind '{name}'")
            if settings is not None and not isinstance(settings, dict):
                raise ConfigError(f"backends.{name} must be a mapping")
            self.backends[kind.value] = _merge(self.backends.get(kind.value, {}), settings or {})
        self.logging: Dict[str, Any] = self.raw_config.get("logging") or {}

        self.validate()

    # Orchestrator ----------------------------------------------------------

    @property
    def default_timeout_s(self) -> float:
        return float(self.orchestrator["default_timeout_s"])

    @property
    def cancel_grace_s(self) -> float:
        return float(self.orchestrator["cancel_grace_s"])

    @property
    def shutdown_grace_s(self) -> float:
        return float(self.orchestrator["shutdown_grace_s"])

    @property
    def replace_capabilities(self) -> bool:
        return bool(self.orchestrator["replace_capabilities"])

    @property
    def detect_output_conflicts(self) -> bool:
        return bool(self.orchestrator["detect_output_conflicts"])

    @property
    def cleanup_on_failure(self) -> bool:
        return bool(self.orchestrator["cleanup_on_failure"])

    @property
    def result_cache_size(self) -> int:
        return int(self.orchestrator["result_cache_size"])

    # Backends --------------------------------------------------------------

    def backend_settings(self, kind: JobKind) -> Dict[str, Any]:
        return self.backends.get(kind.value) or {}

    def backend_command(self, kind: JobKind) -> Optional[List[str]]:
        """argv template configured for a kind, or None for in-process back-ends."""
        command = self.backend_settings(kind).get("command")
        if command is None:
            return None
        if isinstance(command, str):
            return shlex.split(command)
        return [str(arg) for arg in command]

    @property
    def wasm_formats(self) -> List[str]:
        return list(self.backend_settings(JobKind.WASM_TRANSFORM).get("formats") or [])

    @property
    def bundle_banner(self) -> bool:
        return bool(self.backend_settings(JobKind.BUNDLE).get("banner", True))

    # Logging ---------------------------------------------------------------

    def get_log_file_path(self) -> Optional[Path]:
        """Get log file path with date interpolation, None when file logging is off."""
        log_output = self.logging.get("output")
        if not log_output:
            return None
        log_output = str(log_output).replace("{date}", datetime.now().strftime("%Y-%m-%d"))
        return Path(log_output).expanduser()

    def get_log_level(self) -> str:
        return str(self.logging.get("level", "INFO")).upper()

    def get_log_format(self) -> str:
        """Get log format (structured or pretty)."""
        return self.logging.get("format", "pretty")

    def should_log_to_console(self) -> bool:
        return bool(self.logging.get("console", True))

    # Validation ------------------------------------------------------------

    def validate(self) -> None:
        """Validate entire configuration."""
        for key in ("default_timeout_s", "cancel_grace_s", "shutdown_grace_s"):
            value = self.orchestrator.get(key)
            if not isinstance(value, (int, float)) or isinstance(value, bool) or value <= 0:
                raise ConfigError(f"orchestrator.{key} must be a positive number, got {value!r}")

        size = self.orchestrator.get("result_cache_size")
        if not isinstance(size, int) or isinstance(size, bool) or size < 0:
            raise ConfigError(f"orchestrator.result_cache_size must be a non-negative integer, got {size!r}")

        for kind in JobKind:
            command = self.backend_settings(kind).get("command")
            if command is not None and not isinstance(command, (str, list)):
                raise ConfigError(f"backends.{kind.value}.command must be a list or string")
            if command is not None and len(command) == 0:
                raise ConfigError(f"backends.{kind.value}.command must not be empty")

        if self.get_log_level() not in LOG_LEVELS:
            raise ConfigError(f"logging.level must be one of {', '.join(LOG_LEVELS)}")
        if self.get_log_format() not in ("pretty", "structured"):
            raise ConfigError("logging.format must be 'pretty' or 'structured'")

    def to_dict(self) -> Dict[str, Any]:
        return copy.deepcopy(self.raw_config)

    def __repr__(self) -> str:
        return (
            f"NoxiumConfig(path={self.config_path}, "
            f"default_timeout_s={self.default_timeout_s}, backends={len(self.backends)})"
        )


def _load_yaml(config_path: Path) -> Dict[str, Any]:
    """Load and parse YAML configuration file."""
    if not config_path.exists():
        raise ConfigError(f"Configuration file not found: {config_path}")

    try:
        with open(config_path, "r") as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML syntax in {config_path}: {e}")

    if config is None:
        return {}
    if not isinstance(config, dict):
        raise ConfigError(f"Configuration file must contain a mapping: {config_path}")
    return config


def load_config(config_path: Optional[Path] = None) -> NoxiumConfig:
    """
    Load noxium configuration.

    Lookup order: explicit path, $NOXIUM_CONFIG, <noxium home>/config.yaml
    if it exists, otherwise built-in defaults.

    Args:
        config_path: Path to config file

    Returns:
        NoxiumConfig instance

    Raises:
        ConfigError: If config is invalid or an explicit path is missing
    """
    if config_path is None and os.environ.get("NOXIUM_CONFIG"):
        config_path = Path(os.environ["NOXIUM_CONFIG"])

    if config_path is None:
        default_path = get_noxium_home() / "config.yaml"
        if not default_path.exists():
            return NoxiumConfig()
        config_path = default_path

    config_path = Path(config_path).expanduser()
    return NoxiumConfig(_load_yaml(config_path), config_path=config_path)
