"""
Core functionality for the Yz Playground sandbox.
"""

from .config import ConfigManager, PlaygroundConfig, SandboxConfig, ToolchainConfig
from .exceptions import (
    ConfigurationError,
    ControlPlaneError,
    ExecutionTimeoutError,
    MemoryLimitError,
    PlaygroundError,
    ProcessError,
    SandboxError,
    WorkspaceIOError,
    format_error_message,
)
from .logging import get_logger, setup_logging

__all__ = [
    "ConfigManager",
    "ConfigurationError",
    "ControlPlaneError",
    "ExecutionTimeoutError",
    "MemoryLimitError",
    "PlaygroundConfig",
    "PlaygroundError",
    "ProcessError",
    "SandboxConfig",
    "SandboxError",
    "ToolchainConfig",
    "WorkspaceIOError",
    "format_error_message",
    "get_logger",
    "setup_logging",
]
