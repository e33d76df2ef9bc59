"""
Configuration for the scan orchestrator.

Values are layered: dataclass defaults, then an optional YAML file, then
environment variables.

Environment variables:
- NIKTO_MODE: local or containerized ("docker" is accepted)
- NIKTO_BINARY: Nikto executable for local mode
- NIKTO_DOCKER_BINARY: container runtime executable
- NIKTO_DOCKER_IMAGE: image used in containerized mode
- NIKTO_DOCKER_NETWORK: network mode for the container
- MAX_CONCURRENT_SCANS: running scan ceiling
- SCAN_TIMEOUT: default scan timeout in seconds
- MAX_SCAN_HISTORY: finished scans kept in memory (0 keeps all)
- LOG_LEVEL: debug, info, warn, error
- TMPDIR: directory for per-scan output files
"""

import os
import tempfile
from dataclasses import asdict, dataclass, field, fields
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml

from . import __version__
from .errors import ConfigError


class ExecutionMode(Enum):
    """Where the Nikto process runs"""
    LOCAL = "local"
    CONTAINERIZED = "containerized"

    @classmethod
    def parse(cls, value: Union[str, "ExecutionMode"]) -> "ExecutionMode":
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().lower()
        if normalized == "docker":
            return cls.CONTAINERIZED
        try:
            return cls(normalized)
        except ValueError:
            raise ConfigError(
                f"Invalid execution mode {value!r}: expected 'local' or 'containerized'"
            )


LOG_LEVELS = ("debug", "info", "warn", "warning", "error")

# Environment variable -> field name
ENV_VARS = {
    "NIKTO_MODE": "execution_mode",
    "NIKTO_BINARY": "nikto_binary",
    "NIKTO_DOCKER_BINARY": "docker_binary",
    "NIKTO_DOCKER_IMAGE": "docker_image",
    "NIKTO_DOCKER_NETWORK": "docker_network",
    "MAX_CONCURRENT_SCANS": "max_concurrent_scans",
    "SCAN_TIMEOUT": "default_timeout",
    "MAX_SCAN_HISTORY": "max_history",
    "LOG_LEVEL": "log_level",
    "TMPDIR": "temp_dir",
}

INT_FIELDS = ("max_concurrent_scans", "default_timeout", "max_history")


@dataclass
class OrchestratorConfig:
    """Configuration for the scan orchestrator"""
    execution_mode: ExecutionMode = ExecutionMode.LOCAL
    nikto_binary: str = "nikto"
    docker_binary: str = "docker"
    docker_image: str = "ghcr.io/sullo/nikto:latest"
    docker_network: str = "host"
    max_concurrent_scans: int = 3
    default_timeout: int = 3600  # seconds
    max_history: int = 1000  # finished scans kept; 0 keeps all
    log_level: str = "info"
    temp_dir: str = field(default_factory=tempfile.gettempdir)

    def __post_init__(self):
        self.execution_mode = ExecutionMode.parse(self.execution_mode)

        for name in INT_FIELDS:
            value = getattr(self, name)
            try:
                setattr(self, name, int(value))
            except (TypeError, ValueError):
                raise ConfigError(f"{name} must be an integer, got {value!r}")

        if self.max_concurrent_scans <= 0:
            raise ConfigError("max_concurrent_scans must be positive")
        if self.default_timeout <= 0:
            raise ConfigError("default_timeout must be positive")
        if self.max_history < 0:
            raise ConfigError("max_history must not be negative")

        self.log_level = str(self.log_level).lower()
        if self.log_level not in LOG_LEVELS:
            raise ConfigError(
                f"log_level must be one of {', '.join(LOG_LEVELS)}, got {self.log_level!r}"
            )

        for name in ("nikto_binary", "docker_binary", "docker_image", "temp_dir"):
            if not getattr(self, name):
                raise ConfigError(f"{name} must not be empty")

    @classmethod
    def from_env(
        cls,
        env: Optional[Mapping[str, str]] = None,
        base: Optional[Dict[str, Any]] = None,
    ) -> "OrchestratorConfig":
        """
        Build configuration from environment variables.

        Args:
            env: Environment mapping (defaults to os.environ)
            base: Values the environment overrides (e.g. from a YAML file)

        Returns:
            Validated configuration
        """
        env = os.environ if env is None else env
        values = dict(base or {})

        for var, name in ENV_VARS.items():
            raw = env.get(var)
            if raw is not None and raw.strip():
                values[name] = raw.strip()

        return cls(**values)

    @classmethod
    def from_yaml(
        cls,
        path: Union[str, Path],
        env: Optional[Mapping[str, str]] = None,
    ) -> "OrchestratorConfig":
        """
        Load a YAML config file, then apply environment overrides.

        Raises:
            ConfigError: If the file is unreadable, malformed or has unknown keys
        """
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except OSError as e:
            raise ConfigError(f"Cannot read config file {path}: {e}")
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}")

        if not isinstance(data, dict):
            raise ConfigError(f"Config file {path} must contain a mapping")

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"Unknown config keys in {path}: {', '.join(unknown)}")

        return cls.from_env(env=env, base=data)

    def to_public_dict(self) -> Dict[str, Any]:
        """Configuration view safe to show to callers"""
        data = asdict(self)
        data["execution_mode"] = self.execution_mode.value
        data["version"] = __version__
        return data
