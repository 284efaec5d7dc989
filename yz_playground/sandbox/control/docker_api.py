"""
Docker Engine API control plane (docker SDK).
"""

from __future__ import annotations

import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any

import docker
from docker.errors import DockerException, NotFound

from ...core.debug_logger import DebugLogger
from ...core.exceptions import ControlPlaneError, ExecutionTimeoutError
from ...core.logging import get_logger
from .base import EnvironmentSpec, ExecCapture

logger = get_logger(__name__)


class DockerApiControlPlane:
    """Drives environments through the Docker Engine API."""

    name = "docker-api"

    def __init__(self, client: Any = None, control_timeout: float = 30.0, max_exec_workers: int = 4):
        self.control_timeout = control_timeout
        try:
            self.client = client or docker.from_env(timeout=int(max(1, control_timeout)))
        except DockerException as exc:
            raise ControlPlaneError(f"Failed to connect to Docker: {exc}") from exc
        # exec_start blocks until the process exits; runs are bounded from here.
        self._executor = ThreadPoolExecutor(
            max_workers=max_exec_workers, thread_name_prefix="yz-docker-exec"
        )
        self._in_flight: set[Future] = set()

    def create(self, spec: EnvironmentSpec) -> str:
        start = time.perf_counter()
        try:
            container = self.client.containers.run(
                spec.image,
                command=spec.command,
                name=spec.name,
                user=spec.user,
                working_dir=spec.working_dir,
                mem_limit=spec.memory_limit_bytes,
                memswap_limit=spec.memory_swap_bytes,
                network_mode=None if spec.network_enabled else "none",
                privileged=spec.privileged,
                detach=True,
            )
        except DockerException as exc:
            self._trace("create", None, start, error=str(exc))
            raise ControlPlaneError(f"Failed to create environment: {exc}") from exc
        self._trace("create", container.id, start)
        return container.id

    def inject_archive(self, container_id: str, dest_dir: str, archive: bytes) -> None:
        start = time.perf_counter()
        container = self._get(container_id)
        try:
            accepted = container.put_archive(dest_dir, archive)
        except DockerException as exc:
            self._trace("inject", container_id, start, error=str(exc))
            raise ControlPlaneError(f"Failed to copy source: {exc}", container_id) from exc
        if not accepted:
            self._trace("inject", container_id, start, error="archive rejected")
            raise ControlPlaneError("Environment rejected the source archive", container_id)
        self._trace("inject", container_id, start)

    def exec_capture(
        self,
        container_id: str,
        command: str,
        *,
        user: str,
        workdir: str,
        timeout: float,
    ) -> ExecCapture:
        start = time.perf_counter()
        try:
            exec_id = self.client.api.exec_create(
                container_id,
                ["bash", "-c", command],
                stdout=True,
                stderr=True,
                user=user,
                workdir=workdir,
            )["Id"]
        except NotFound as exc:
            raise ControlPlaneError("Environment not found", container_id) from exc
        except DockerException as exc:
            self._trace("exec", container_id, start, error=str(exc))
            raise ControlPlaneError(f"Failed to start command: {exc}", container_id) from exc

        future = self._executor.submit(self.client.api.exec_start, exec_id, demux=False)
        self._in_flight.add(future)
        future.add_done_callback(self._in_flight.discard)
        try:
            output = future.result(timeout=timeout)
        except FutureTimeoutError as exc:
            self._trace("exec", container_id, start, error="timeout")
            raise ExecutionTimeoutError(timeout) from exc
        except DockerException as exc:
            self._trace("exec", container_id, start, error=str(exc))
            raise ControlPlaneError(f"Command failed to run: {exc}", container_id) from exc

        try:
            exit_code = self.client.api.exec_inspect(exec_id).get("ExitCode")
        except DockerException as exc:
            raise ControlPlaneError(f"Failed to inspect command: {exc}", container_id) from exc

        self._trace("exec", container_id, start)
        return ExecCapture(
            exit_code=-1 if exit_code is None else int(exit_code),
            output=output or b"",
        )

    def terminate_processes(self, container_id: str, user: str) -> None:
        container = self._get(container_id)
        try:
            result = container.exec_run(["pkill", "-KILL", "-u", user], user="root")
        except DockerException as exc:
            logger.warning(
                f"pkill failed in {container_id[:12]}; a timed-out exec worker may stay blocked: {exc}"
            )
            raise ControlPlaneError(f"Failed to stop processes: {exc}", container_id) from exc
        # pkill exits 1 when nothing matched.
        if result.exit_code not in (0, 1):
            logger.warning(
                f"pkill exited {result.exit_code} in {container_id[:12]}; "
                "a timed-out exec worker may stay blocked"
            )
            raise ControlPlaneError(
                f"Failed to stop processes: pkill exited {result.exit_code}", container_id
            )

    def is_running(self, container_id: str) -> bool:
        try:
            container = self.client.containers.get(container_id)
        except NotFound:
            return False
        except DockerException as exc:
            raise ControlPlaneError(f"Failed to inspect environment: {exc}", container_id) from exc
        return container.status == "running"

    def memory_usage(self, container_id: str) -> int:
        container = self._get(container_id)
        try:
            stats = container.stats(stream=False)
        except DockerException as exc:
            raise ControlPlaneError(f"Failed to read stats: {exc}", container_id) from exc
        return int((stats.get("memory_stats") or {}).get("usage") or 0)

    def remove(self, container_id: str) -> None:
        start = time.perf_counter()
        container = self._get(container_id)
        try:
            container.remove(force=True)
        except NotFound as exc:
            raise ControlPlaneError("Environment already removed", container_id) from exc
        except DockerException as exc:
            self._trace("remove", container_id, start, error=str(exc))
            raise ControlPlaneError(f"Failed to remove environment: {exc}", container_id) from exc
        self._trace("remove", container_id, start)

    def close(self) -> None:
        stuck = sum(1 for future in list(self._in_flight) if not future.done())
        if stuck:
            logger.warning(f"Abandoning {stuck} exec worker(s) still blocked in exec_start")
        self._executor.shutdown(wait=False)
        self.client.close()

    def _get(self, container_id: str):
        try:
            return self.client.containers.get(container_id)
        except NotFound as exc:
            raise ControlPlaneError("Environment not found", container_id) from exc
        except DockerException as exc:
            raise ControlPlaneError(f"Failed to look up environment: {exc}", container_id) from exc

    @staticmethod
    def _trace(operation: str, container_id: str | None, start: float, error: str | None = None) -> None:
        DebugLogger.get_instance().log_control_plane_call(
            operation,
            container_id,
            time.perf_counter() - start,
            error=error,
        )

    @staticmethod
    def check_health() -> tuple[bool, str]:
        """Return (healthy, detail) for Docker Engine API availability."""
        try:
            client = docker.from_env(timeout=3)
        except DockerException as exc:
            return False, f"docker API unreachable: {exc}"
        try:
            client.ping()
            version = client.version().get("Version", "unknown")
        except DockerException as exc:
            return False, f"docker API unreachable: {exc}"
        finally:
            client.close()
        return True, f"docker API ready (server {version})"
