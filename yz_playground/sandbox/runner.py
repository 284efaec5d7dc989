"""
Isolated runner: one long-lived environment that compiles and runs submissions.
"""

from __future__ import annotations

import io
import re
import shlex
import tarfile
import time
import uuid
from dataclasses import dataclass

from ..core.config import PlaygroundConfig
from ..core.debug_logger import DebugLogger
from ..core.exceptions import (
    ControlPlaneError,
    ExecutionTimeoutError,
    MemoryLimitError,
    PlaygroundError,
    ProcessError,
    WorkspaceIOError,
)
from ..core.logging import get_logger
from .control import ControlPlane, EnvironmentSpec, create_control_plane
from .output import sanitize_output, strip_stream_debris

logger = get_logger(__name__)

# 128 + SIGKILL: what the runtime's OOM killer leaves behind.
_KILLED_EXIT_CODE = 137
_NAME_UNSAFE = re.compile(r"[^a-zA-Z0-9_.-]+")


@dataclass(frozen=True, slots=True)
class RunnerConfig:
    """Immutable settings shared by every runner of one pool."""

    image: str
    memory_limit_bytes: int
    max_execution_time: float
    working_dir: str
    compiler: str
    user: str = "yzuser"
    container_name: str | None = None
    container_prefix: str = "yz-sandbox"
    control_plane: str = "docker-cli"
    docker_binary: str = "docker"
    network_enabled: bool = False
    privileged: bool = False
    control_timeout_seconds: float = 30.0
    source_filename: str = "main.yz"
    run_command: str = "cd {workdir} && {compiler} {source}"
    generated_code_command: str = "cd {workdir} && {compiler} -e {source}"
    version_command: str = "{compiler} --version"
    generated_code_begin: str = "=== Generated Code ==="
    generated_code_end: str = "=== End Generated Code ==="
    noise_markers: tuple[str, ...] = (
        "Built:",
        "yzc build",
        "running generated app",
        "Execution completed",
    )

    @classmethod
    def from_config(cls, config: PlaygroundConfig) -> "RunnerConfig":
        sandbox = config.sandbox
        toolchain = config.toolchain
        return cls(
            image=sandbox.image,
            memory_limit_bytes=sandbox.max_memory_bytes,
            max_execution_time=float(sandbox.max_execution_time_seconds),
            working_dir=sandbox.working_dir,
            compiler=toolchain.compiler,
            user=sandbox.user,
            container_name=sandbox.container_name or None,
            container_prefix=sandbox.container_prefix,
            control_plane=sandbox.control_plane,
            docker_binary=sandbox.docker_binary,
            network_enabled=sandbox.network_enabled,
            privileged=sandbox.privileged,
            control_timeout_seconds=float(sandbox.control_timeout_seconds),
            source_filename=toolchain.source_filename,
            run_command=toolchain.run_command,
            generated_code_command=toolchain.generated_code_command,
            version_command=toolchain.version_command,
            generated_code_begin=toolchain.generated_code_begin,
            generated_code_end=toolchain.generated_code_end,
            noise_markers=tuple(toolchain.noise_markers),
        )


@dataclass(slots=True)
class RunOutcome:
    """Sanitized result of one successful build-and-run."""

    output: str
    generated_code: str
    exit_code: int
    has_output: bool


def build_source_archive(filename: str, data: bytes) -> bytes:
    """Pack ``data`` as a single world-readable file in an in-memory tar."""
    buffer = io.BytesIO()
    try:
        with tarfile.open(fileobj=buffer, mode="w") as tar:
            info = tarfile.TarInfo(name=filename)
            info.size = len(data)
            info.mode = 0o644
            info.mtime = int(time.time())
            tar.addfile(info, io.BytesIO(data))
    except (tarfile.TarError, OSError, ValueError) as exc:
        raise WorkspaceIOError(f"could not archive {filename}: {exc}") from exc
    return buffer.getvalue()


class IsolatedRunner:
    """
    Owns one isolated environment and runs submissions inside it.

    The runner either creates its own environment (and removes it on close) or
    attaches to a pre-provisioned one named by ``RunnerConfig.container_name``,
    which it never removes. Not safe for concurrent use: callers sharing a
    session key share the workspace, and the last inject before a run wins.
    """

    def __init__(
        self,
        session_key: str,
        config: RunnerConfig,
        control_plane: ControlPlane | None = None,
    ):
        self.session_key = session_key
        self.config = config
        self._control = control_plane or create_control_plane(config.control_plane, config)
        self.owns_environment = not config.container_name
        self.container_id: str | None = None
        # Set after a timeout; the environment is re-verified before reuse.
        self.suspect = False
        self._closed = False
        self._debug = DebugLogger.get_instance()

    @classmethod
    def open(
        cls,
        session_key: str,
        config: RunnerConfig,
        control_plane: ControlPlane | None = None,
    ) -> "IsolatedRunner":
        """Create a runner and bring its environment up."""
        runner = cls(session_key, config, control_plane)
        try:
            runner.start()
        except Exception:
            runner._control.close()
            raise
        return runner

    def start(self) -> None:
        """Create (or attach to) the environment."""
        if self.container_id is not None:
            return
        if self.owns_environment:
            self.container_id = self._create_environment()
            return

        name = self.config.container_name
        if not self._control.is_running(name):
            raise ControlPlaneError(f"Environment '{name}' not found or not running", name)
        self.container_id = name
        logger.info(f"Session '{self.session_key}' attached to environment {name}")

    def inject(self, source: str | bytes) -> None:
        """
        Write the submission to the workspace, replacing any previous one.

        A trailing newline is appended when missing. Returns only once the file
        is fully written inside the environment.
        """
        container_id = self._require_environment()
        if isinstance(source, str):
            try:
                data = source.encode("utf-8")
            except UnicodeEncodeError as exc:
                raise WorkspaceIOError(f"source is not valid UTF-8: {exc}") from exc
        else:
            data = bytes(source)
        if not data.endswith(b"\n"):
            data += b"\n"

        archive = build_source_archive(self.config.source_filename, data)
        with self._debug.timed_operation("sandbox.inject"):
            self._control.inject_archive(container_id, self.config.working_dir, archive)

    def run(self, show_generated_code: bool = False, deadline: float | None = None) -> RunOutcome:
        """
        Build and run the injected source.

        Args:
            show_generated_code: Ask the compiler for its generated-code section
            deadline: ``time.monotonic()`` instant after which the run is aborted;
                the configured execution ceiling applies either way

        Raises:
            ExecutionTimeoutError: deadline or ceiling reached; the user's
                processes are killed and the runner is marked suspect
            ProcessError: nonzero exit, carrying the sanitized diagnostics
            ControlPlaneError: the environment could not be reached
        """
        self._verify_if_suspect()
        container_id = self._require_environment()

        timeout = self.config.max_execution_time
        if deadline is not None:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise ExecutionTimeoutError(0)
            timeout = min(timeout, remaining)

        template = (
            self.config.generated_code_command if show_generated_code else self.config.run_command
        )
        command = self._expand(template)
        logger.debug(f"Session '{self.session_key}' running: {command}")

        try:
            with self._debug.timed_operation("sandbox.run"):
                capture = self._control.exec_capture(
                    container_id,
                    command,
                    user=self.config.user,
                    workdir=self.config.working_dir,
                    timeout=timeout,
                )
        except ExecutionTimeoutError:
            self.suspect = True
            logger.warning(
                f"Session '{self.session_key}' timed out after {timeout:.2f}s; killing user processes"
            )
            self._abort_runaway(container_id)
            raise

        sanitized = sanitize_output(
            capture.output,
            show_generated_code,
            begin_marker=self.config.generated_code_begin,
            end_marker=self.config.generated_code_end,
            noise_markers=self.config.noise_markers,
        )

        if capture.exit_code == _KILLED_EXIT_CODE:
            diagnostics = sanitized.program_output if sanitized.has_output else ""
            raise MemoryLimitError(capture.exit_code, diagnostics, self.config.memory_limit_bytes)
        if capture.exit_code != 0:
            diagnostics = sanitized.program_output if sanitized.has_output else ""
            raise ProcessError(capture.exit_code, diagnostics)

        return RunOutcome(
            output=sanitized.program_output,
            generated_code=sanitized.generated_code,
            exit_code=capture.exit_code,
            has_output=sanitized.has_output,
        )

    def get_toolchain_version(self, timeout: float | None = None) -> str:
        """Return the compiler's version string as reported inside the environment."""
        self._verify_if_suspect()
        container_id = self._require_environment()
        capture = self._control.exec_capture(
            container_id,
            self._expand(self.config.version_command),
            user=self.config.user,
            workdir=self.config.working_dir,
            timeout=timeout or self.config.control_timeout_seconds,
        )
        text = strip_stream_debris(capture.output).strip()
        if capture.exit_code != 0:
            raise ProcessError(capture.exit_code, text)
        return text

    def validate_toolchain(self) -> None:
        """Raise unless the compiler answers its version command."""
        version = self.get_toolchain_version()
        if not version:
            raise ProcessError(0, "toolchain returned an empty version string")

    def memory_usage(self) -> int:
        """Best-effort memory usage of the environment in bytes; 0 when unavailable."""
        if self.container_id is None:
            return 0
        try:
            return max(0, int(self._control.memory_usage(self.container_id)))
        except PlaygroundError as exc:
            logger.debug(f"Memory sampling failed for session '{self.session_key}': {exc}")
            return 0

    def close(self) -> None:
        """
        Release the control-plane connection.

        Removes the environment only when this runner created it.
        """
        if self._closed:
            return
        self._closed = True
        try:
            if self.owns_environment and self.container_id is not None:
                container_id, self.container_id = self.container_id, None
                self._control.remove(container_id)
                logger.info(f"Removed environment {container_id[:12]} (session '{self.session_key}')")
        finally:
            self._control.close()

    @property
    def closed(self) -> bool:
        return self._closed

    def _create_environment(self) -> str:
        spec = EnvironmentSpec(
            image=self.config.image,
            name=self._environment_name(),
            user=self.config.user,
            working_dir=self.config.working_dir,
            memory_limit_bytes=self.config.memory_limit_bytes,
            memory_swap_bytes=self.config.memory_limit_bytes,
            network_enabled=self.config.network_enabled,
            privileged=self.config.privileged,
        )
        with self._debug.timed_operation("sandbox.create"):
            container_id = self._control.create(spec)
        logger.info(
            f"Created environment {container_id[:12]} for session '{self.session_key}' "
            f"(image={self.config.image})"
        )
        return container_id

    def _environment_name(self) -> str:
        slug = _NAME_UNSAFE.sub("-", self.session_key).strip("-.") or "session"
        return f"{self.config.container_prefix}-{slug[:32]}-{uuid.uuid4().hex[:8]}"

    def _require_environment(self) -> str:
        if self._closed:
            raise ControlPlaneError(f"Runner for session '{self.session_key}' is closed")
        if self.container_id is None:
            self.start()
        return self.container_id

    def _verify_if_suspect(self) -> None:
        if not self.suspect or self.container_id is None:
            return
        if self._control.is_running(self.container_id):
            self.suspect = False
            return
        if not self.owns_environment:
            raise ControlPlaneError(
                f"Environment '{self.container_id}' stopped after a timeout", self.container_id
            )

        stale, self.container_id = self.container_id, None
        logger.warning(f"Environment {stale[:12]} is gone after a timeout; recreating")
        try:
            self._control.remove(stale)
        except ControlPlaneError as exc:
            logger.debug(f"Stale environment {stale[:12]} not removed: {exc}")
        self.container_id = self._create_environment()
        self.suspect = False

    def _abort_runaway(self, container_id: str) -> None:
        try:
            self._control.terminate_processes(container_id, self.config.user)
        except PlaygroundError as exc:
            logger.warning(f"Could not stop runaway processes in {container_id[:12]}: {exc}")

    def _expand(self, template: str) -> str:
        mapping = {
            "{compiler}": shlex.quote(self.config.compiler),
            "{source}": shlex.quote(self.config.source_filename),
            "{workdir}": shlex.quote(self.config.working_dir),
        }
        expanded = str(template)
        for key, value in mapping.items():
            expanded = expanded.replace(key, value)
        return expanded
