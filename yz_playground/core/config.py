"""
Configuration management for the Yz Playground sandbox.
"""

import json
import os
from collections.abc import Mapping
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from .exceptions import ConfigurationError
from .logging import get_logger

logger = get_logger(__name__)

SUPPORTED_CONTROL_PLANES = ("docker-cli", "docker-api")


@dataclass
class SandboxConfig:
    """Isolation runtime configuration."""

    control_plane: str = "docker-cli"  # docker-cli | docker-api
    image: str = "yz-sandbox:latest"
    # When set, runners attach to this pre-provisioned container and never remove it.
    container_name: str | None = None
    container_prefix: str = "yz-sandbox"
    user: str = "yzuser"
    working_dir: str = "/workspace"
    memory_limit_mb: int = 256
    max_execution_time_seconds: float = 10.0
    network_enabled: bool = False
    privileged: bool = False
    control_timeout_seconds: float = 30.0
    default_session_key: str = "default"
    version_session_key: str = "version"
    recycle_on_timeout: bool = True
    docker_binary: str = "docker"

    @property
    def max_memory_bytes(self) -> int:
        return int(self.memory_limit_mb) * 1024 * 1024


@dataclass
class ToolchainConfig:
    """Conventions of the compiler invoked inside the environment."""

    compiler: str = "yzc"
    source_filename: str = "main.yz"
    run_command: str = "cd {workdir} && {compiler} {source}"
    generated_code_command: str = "cd {workdir} && {compiler} -e {source}"
    version_command: str = "{compiler} --version"
    generated_code_begin: str = "=== Generated Code ==="
    generated_code_end: str = "=== End Generated Code ==="
    noise_markers: list[str] = field(
        default_factory=lambda: [
            "Built:",
            "yzc build",
            "running generated app",
            "Execution completed",
        ]
    )


@dataclass
class PlaygroundConfig:
    """Main service configuration."""

    name: str = "yz-playground"
    sandbox: SandboxConfig = field(default_factory=SandboxConfig)
    toolchain: ToolchainConfig = field(default_factory=ToolchainConfig)
    max_code_size: int = 10000
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "PlaygroundConfig":
        """Build configuration from a parsed mapping, ignoring unknown keys."""
        data = dict(data or {})

        sandbox_data = data.get("sandbox") or {}
        if not isinstance(sandbox_data, Mapping):
            raise ConfigurationError("'sandbox' section must be a mapping")
        toolchain_data = data.get("toolchain") or {}
        if not isinstance(toolchain_data, Mapping):
            raise ConfigurationError("'toolchain' section must be a mapping")

        sandbox = SandboxConfig(**_known_fields(SandboxConfig, sandbox_data, "sandbox"))
        toolchain_kwargs = _known_fields(ToolchainConfig, toolchain_data, "toolchain")
        markers = toolchain_kwargs.get("noise_markers")
        if isinstance(markers, str):
            toolchain_kwargs["noise_markers"] = [markers]
        toolchain = ToolchainConfig(**toolchain_kwargs)

        top_level = _known_fields(cls, data, "top-level")
        top_level["sandbox"] = sandbox
        top_level["toolchain"] = toolchain
        config = cls(**top_level)
        config.validate()
        return config

    @classmethod
    def load_from_file(cls, config_path: Path) -> "PlaygroundConfig":
        """Load configuration from a YAML or JSON file."""
        if not config_path.exists():
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        try:
            with open(config_path, encoding="utf-8") as f:
                if config_path.suffix.lower() == ".json":
                    data = json.load(f)
                else:
                    data = yaml.safe_load(f)
        except (OSError, json.JSONDecodeError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Failed to load configuration: {e}") from e

        if data is not None and not isinstance(data, Mapping):
            raise ConfigurationError(f"Configuration root must be a mapping: {config_path}")
        return cls.from_dict(data)

    def save_to_file(self, config_path: Path) -> None:
        """Save configuration to file."""
        try:
            config_path.parent.mkdir(parents=True, exist_ok=True)
            data = asdict(self)
            with open(config_path, "w", encoding="utf-8") as f:
                if config_path.suffix.lower() == ".json":
                    json.dump(data, f, indent=2)
                else:
                    yaml.safe_dump(data, f, default_flow_style=False, indent=2, sort_keys=False)
        except OSError as e:
            raise ConfigurationError(f"Failed to save configuration: {e}") from e

    def apply_env_overrides(self, environ: Mapping[str, str] | None = None) -> "PlaygroundConfig":
        """
        Override settings from environment variables.

        MAX_EXECUTION_TIME is given in milliseconds and MAX_MEMORY in megabytes,
        matching the variables the service has always read.
        """
        env = os.environ if environ is None else environ

        timeout_ms = _env_int(env, "MAX_EXECUTION_TIME")
        if timeout_ms is not None:
            self.sandbox.max_execution_time_seconds = timeout_ms / 1000.0
        memory_mb = _env_int(env, "MAX_MEMORY")
        if memory_mb is not None:
            self.sandbox.memory_limit_mb = memory_mb
        code_size = _env_int(env, "MAX_CODE_SIZE")
        if code_size is not None:
            self.max_code_size = code_size

        if env.get("SANDBOX_CONTAINER"):
            self.sandbox.container_name = env["SANDBOX_CONTAINER"]
        if env.get("SANDBOX_IMAGE"):
            self.sandbox.image = env["SANDBOX_IMAGE"]
        if env.get("SANDBOX_CONTROL_PLANE"):
            self.sandbox.control_plane = env["SANDBOX_CONTROL_PLANE"].strip().lower()
        if env.get("YZ_COMPILER_PATH"):
            self.toolchain.compiler = env["YZ_COMPILER_PATH"]
        if env.get("LOG_LEVEL"):
            self.log_level = env["LOG_LEVEL"]

        self.validate()
        return self

    def validate(self) -> None:
        """Reject values the sandbox cannot run with."""
        sandbox = self.sandbox
        if sandbox.control_plane not in SUPPORTED_CONTROL_PLANES:
            raise ConfigurationError(
                f"Unsupported control plane '{sandbox.control_plane}'. "
                f"Supported: {', '.join(SUPPORTED_CONTROL_PLANES)}"
            )
        if sandbox.memory_limit_mb <= 0:
            raise ConfigurationError("sandbox.memory_limit_mb must be positive")
        if sandbox.max_execution_time_seconds <= 0:
            raise ConfigurationError("sandbox.max_execution_time_seconds must be positive")
        if sandbox.control_timeout_seconds <= 0:
            raise ConfigurationError("sandbox.control_timeout_seconds must be positive")
        if not sandbox.default_session_key:
            raise ConfigurationError("sandbox.default_session_key must not be empty")
        if not sandbox.container_name and not sandbox.image:
            raise ConfigurationError("Either sandbox.image or sandbox.container_name is required")
        if "/" in self.toolchain.source_filename:
            raise ConfigurationError("toolchain.source_filename must be a bare file name")
        if self.max_code_size <= 0:
            raise ConfigurationError("max_code_size must be positive")


class ConfigManager:
    """Locates and loads the service configuration."""

    CONFIG_FILENAME = "yz_playground.yaml"

    def __init__(self, project_root: Path | None = None, config_path: Path | None = None):
        self.project_root = project_root or Path.cwd()
        self.config_path = config_path or self.project_root / self.CONFIG_FILENAME
        self._config: PlaygroundConfig | None = None

    @property
    def config(self) -> PlaygroundConfig:
        """Get current configuration, loading if necessary."""
        if self._config is None:
            self.load_config()
        return self._config

    def load_config(self, environ: Mapping[str, str] | None = None) -> PlaygroundConfig:
        """Load configuration from file (when present) and apply env overrides."""
        if self.config_path.exists():
            config = PlaygroundConfig.load_from_file(self.config_path)
        else:
            logger.debug(f"No configuration at {self.config_path}; using defaults")
            config = PlaygroundConfig()
        self._config = config.apply_env_overrides(environ)
        return self._config

    def save_config(self) -> None:
        if self._config is None:
            raise ConfigurationError("No configuration to save")
        self._config.save_to_file(self.config_path)


def _known_fields(cls: type, data: Mapping[str, Any], section: str) -> dict[str, Any]:
    names = {f.name for f in fields(cls)}
    unknown = sorted(str(k) for k in data if k not in names)
    if unknown:
        logger.warning(f"Ignoring unknown {section} configuration keys: {', '.join(unknown)}")
    return {k: v for k, v in data.items() if k in names and k not in ("sandbox", "toolchain")}


def _env_int(env: Mapping[str, str], key: str) -> int | None:
    raw = env.get(key)
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Ignoring {key}={raw!r}: not an integer")
        return None
