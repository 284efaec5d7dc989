"""
Docker CLI control plane.
"""

import re
import shutil
import subprocess
import time

from ...core.debug_logger import DebugLogger
from ...core.exceptions import ConfigurationError, ControlPlaneError, ExecutionTimeoutError
from ...core.logging import get_logger
from .base import EnvironmentSpec, ExecCapture

logger = get_logger(__name__)

_SIZE_UNITS = {
    "b": 1,
    "kb": 1000,
    "mb": 1000**2,
    "gb": 1000**3,
    "kib": 1024,
    "mib": 1024**2,
    "gib": 1024**3,
}
_SIZE_PATTERN = re.compile(r"^\s*([0-9]+(?:\.[0-9]+)?)\s*([a-zA-Z]*)\s*$")


class DockerCliControlPlane:
    """Drives environments by invoking the ``docker`` command line."""

    name = "docker-cli"

    def __init__(self, docker_binary: str = "docker", control_timeout: float = 30.0):
        self.docker_binary = docker_binary
        self.control_timeout = control_timeout

    def create(self, spec: EnvironmentSpec) -> str:
        cmd: list[str] = [
            self.docker_binary,
            "run",
            "--detach",
            "--name",
            spec.name,
            "--user",
            spec.user,
            "--workdir",
            spec.working_dir,
            "--memory",
            str(spec.memory_limit_bytes),
            "--memory-swap",
            str(spec.memory_swap_bytes),
        ]
        if not spec.network_enabled:
            cmd.extend(["--network", "none"])
        if spec.privileged:
            cmd.append("--privileged")
        cmd.append(spec.image)
        cmd.extend(spec.command)

        result = self._run(cmd, operation="create")
        container_id = result.stdout.decode("utf-8", errors="replace").strip()
        if not container_id:
            raise ControlPlaneError("docker run returned no container id")
        return container_id

    def inject_archive(self, container_id: str, dest_dir: str, archive: bytes) -> None:
        # "docker cp -" reads a tar stream from stdin and extracts it in place.
        self._run(
            [self.docker_binary, "cp", "-", f"{container_id}:{dest_dir}"],
            operation="inject",
            container_id=container_id,
            input_data=archive,
        )

    def exec_capture(
        self,
        container_id: str,
        command: str,
        *,
        user: str,
        workdir: str,
        timeout: float,
    ) -> ExecCapture:
        cmd = [
            self.docker_binary,
            "exec",
            "--user",
            user,
            "--workdir",
            workdir,
            container_id,
            "bash",
            "-c",
            command,
        ]
        start = time.perf_counter()
        try:
            result = subprocess.run(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                timeout=timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            self._trace("exec", container_id, start, error="timeout")
            raise ExecutionTimeoutError(timeout) from exc
        except FileNotFoundError as exc:
            raise ConfigurationError(f"Docker CLI not found: {self.docker_binary}") from exc
        except OSError as exc:
            self._trace("exec", container_id, start, error=str(exc))
            raise ControlPlaneError(f"docker exec failed: {exc}", container_id) from exc

        self._trace("exec", container_id, start)
        return ExecCapture(exit_code=result.returncode, output=result.stdout or b"")

    def terminate_processes(self, container_id: str, user: str) -> None:
        # pkill exits 1 when nothing matched; only a docker failure matters here.
        self._run(
            [
                self.docker_binary,
                "exec",
                "--user",
                "root",
                container_id,
                "pkill",
                "-KILL",
                "-u",
                user,
            ],
            operation="terminate",
            container_id=container_id,
            allowed_codes=(0, 1),
        )

    def is_running(self, container_id: str) -> bool:
        try:
            result = self._run(
                [self.docker_binary, "inspect", "--format", "{{.State.Running}}", container_id],
                operation="inspect",
                container_id=container_id,
            )
        except ControlPlaneError:
            return False
        return result.stdout.decode("utf-8", errors="replace").strip().lower() == "true"

    def memory_usage(self, container_id: str) -> int:
        result = self._run(
            [
                self.docker_binary,
                "stats",
                "--no-stream",
                "--format",
                "{{.MemUsage}}",
                container_id,
            ],
            operation="stats",
            container_id=container_id,
        )
        usage = result.stdout.decode("utf-8", errors="replace").split("/", 1)[0]
        return parse_size(usage)

    def remove(self, container_id: str) -> None:
        self._run(
            [self.docker_binary, "rm", "--force", container_id],
            operation="remove",
            container_id=container_id,
        )

    def close(self) -> None:
        """Nothing to release; every call is a separate CLI process."""

    def _run(
        self,
        cmd: list[str],
        *,
        operation: str,
        container_id: str | None = None,
        input_data: bytes | None = None,
        allowed_codes: tuple[int, ...] = (0,),
    ) -> subprocess.CompletedProcess:
        start = time.perf_counter()
        try:
            result = subprocess.run(
                cmd,
                input=input_data,
                capture_output=True,
                timeout=self.control_timeout,
                check=False,
            )
        except FileNotFoundError as exc:
            raise ConfigurationError(f"Docker CLI not found: {self.docker_binary}") from exc
        except subprocess.TimeoutExpired as exc:
            self._trace(operation, container_id, start, error="timeout")
            raise ControlPlaneError(
                f"docker {operation} timed out after {self.control_timeout:g}s", container_id
            ) from exc

        if result.returncode not in allowed_codes:
            detail = (result.stderr or result.stdout or b"").decode("utf-8", errors="replace")
            detail = detail.strip() or f"exit code {result.returncode}"
            self._trace(operation, container_id, start, error=detail)
            raise ControlPlaneError(f"docker {operation} failed: {detail}", container_id)

        self._trace(operation, container_id, start)
        return result

    @staticmethod
    def _trace(
        operation: str,
        container_id: str | None,
        start: float,
        error: str | None = None,
    ) -> None:
        DebugLogger.get_instance().log_control_plane_call(
            operation,
            container_id,
            time.perf_counter() - start,
            error=error,
        )

    @staticmethod
    def check_health(docker_binary: str = "docker", timeout_seconds: float = 2.5) -> tuple[bool, str]:
        """Return (healthy, detail) for docker daemon availability."""
        if shutil.which(docker_binary) is None:
            return False, "docker CLI not found"
        try:
            result = subprocess.run(
                [docker_binary, "info", "--format", "{{.ServerVersion}}"],
                capture_output=True,
                text=True,
                timeout=timeout_seconds,
                check=False,
            )
        except FileNotFoundError:
            return False, "docker CLI not found"
        except subprocess.TimeoutExpired:
            return False, "docker check timed out"

        if result.returncode != 0:
            detail = (result.stderr or result.stdout).strip() or "docker daemon unavailable"
            return False, detail

        version = result.stdout.strip() or "unknown"
        return True, f"docker daemon ready (server {version})"

    @staticmethod
    def image_available(image: str, docker_binary: str = "docker", timeout_seconds: float = 3.0) -> bool:
        """Return whether ``image`` is present locally."""
        try:
            inspect = subprocess.run(
                [docker_binary, "image", "inspect", image],
                capture_output=True,
                text=True,
                timeout=timeout_seconds,
                check=False,
            )
        except (FileNotFoundError, subprocess.TimeoutExpired):
            return False
        return inspect.returncode == 0


def parse_size(value: str) -> int:
    """Parse sizes like ``12.5MiB`` or ``1.2kB`` into bytes; 0 when unparseable."""
    match = _SIZE_PATTERN.match(value or "")
    if not match:
        return 0
    number, unit = match.groups()
    factor = _SIZE_UNITS.get((unit or "b").lower())
    if factor is None:
        return 0
    return int(float(number) * factor)
