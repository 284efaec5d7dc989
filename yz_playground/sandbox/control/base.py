"""
Base types for isolation control planes.
"""

from dataclasses import dataclass, field
from typing import Protocol


@dataclass(slots=True)
class EnvironmentSpec:
    """Parameters for creating one isolated environment."""

    image: str
    name: str
    user: str
    working_dir: str
    memory_limit_bytes: int
    # Swap ceiling equal to the memory ceiling disables swap.
    memory_swap_bytes: int
    network_enabled: bool = False
    privileged: bool = False
    command: list[str] = field(default_factory=lambda: ["sleep", "infinity"])


@dataclass(slots=True)
class ExecCapture:
    """Combined output and exit status of a command run inside an environment."""

    exit_code: int
    output: bytes


class ControlPlane(Protocol):
    """Operations the sandbox needs from an isolation runtime."""

    name: str

    def create(self, spec: EnvironmentSpec) -> str:
        """Create and start an environment, returning its id."""

    def inject_archive(self, container_id: str, dest_dir: str, archive: bytes) -> None:
        """Extract a tar archive into ``dest_dir``; returns once fully written."""

    def exec_capture(
        self,
        container_id: str,
        command: str,
        *,
        user: str,
        workdir: str,
        timeout: float,
    ) -> ExecCapture:
        """Run a shell command, raising ExecutionTimeoutError past ``timeout``."""

    def terminate_processes(self, container_id: str, user: str) -> None:
        """Kill every process owned by ``user`` inside the environment."""

    def is_running(self, container_id: str) -> bool:
        """Return whether the environment exists and is running."""

    def memory_usage(self, container_id: str) -> int:
        """Return current memory usage in bytes."""

    def remove(self, container_id: str) -> None:
        """Force-remove the environment."""

    def close(self) -> None:
        """Release the connection to the control plane."""
