"""
Pytest configuration and fixtures for Yz Playground tests.
"""

import os
import threading
import time
from collections import deque

import pytest
from hypothesis import Verbosity, settings

from yz_playground.core.debug_logger import DebugLogger
from yz_playground.core.exceptions import ControlPlaneError, ExecutionTimeoutError
from yz_playground.sandbox.control import EnvironmentSpec, ExecCapture
from yz_playground.sandbox.runner import IsolatedRunner, RunnerConfig

# Configure hypothesis settings for property-based testing
settings.register_profile(
    "default",
    max_examples=100,
    verbosity=Verbosity.normal,
    deadline=None,  # Disable deadline for slow operations
)

settings.register_profile(
    "ci",
    max_examples=200,
    verbosity=Verbosity.normal,
    deadline=None,
)

settings.register_profile(
    "dev",
    max_examples=10,
    verbosity=Verbosity.verbose,
    deadline=None,
)

# Load profile from environment or use default
settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "default"))


class FakeControlPlane:
    """
    In-memory control plane recording every call.

    ``exec_results`` is consumed in order; each entry is an ExecCapture, an
    exception instance to raise, the string ``"timeout"`` (raises
    ExecutionTimeoutError with the requested timeout) or a callable taking
    ``(command, timeout)``. When empty, exec returns exit 0 with no output.
    """

    name = "fake"

    def __init__(self, create_delay: float = 0.0):
        self.create_delay = create_delay
        self.created: list[EnvironmentSpec] = []
        self.archives: list[tuple[str, str, bytes]] = []
        self.commands: list[dict] = []
        self.terminated: list[tuple[str, str]] = []
        self.removed: list[str] = []
        self.running: set[str] = set()
        self.exec_results: deque = deque()
        self.memory_bytes = 4 * 1024 * 1024
        self.memory_delay = 0.0
        self.memory_error: Exception | None = None
        self.remove_error: Exception | None = None
        self.close_calls = 0
        self._lock = threading.Lock()

    def create(self, spec: EnvironmentSpec) -> str:
        if self.create_delay:
            time.sleep(self.create_delay)
        with self._lock:
            self.created.append(spec)
            container_id = f"env{len(self.created):04d}" + "0" * 8
            self.running.add(container_id)
        return container_id

    def inject_archive(self, container_id: str, dest_dir: str, archive: bytes) -> None:
        self.archives.append((container_id, dest_dir, archive))

    def exec_capture(self, container_id, command, *, user, workdir, timeout):
        self.commands.append(
            {
                "container_id": container_id,
                "command": command,
                "user": user,
                "workdir": workdir,
                "timeout": timeout,
            }
        )
        if not self.exec_results:
            return ExecCapture(exit_code=0, output=b"")
        result = self.exec_results.popleft()
        if result == "timeout":
            raise ExecutionTimeoutError(timeout)
        if isinstance(result, Exception):
            raise result
        if callable(result):
            return result(command, timeout)
        return result

    def terminate_processes(self, container_id: str, user: str) -> None:
        self.terminated.append((container_id, user))

    def is_running(self, container_id: str) -> bool:
        return container_id in self.running

    def memory_usage(self, container_id: str) -> int:
        if self.memory_delay:
            time.sleep(self.memory_delay)
        if self.memory_error is not None:
            raise self.memory_error
        return self.memory_bytes

    def remove(self, container_id: str) -> None:
        if self.remove_error is not None:
            raise self.remove_error
        self.removed.append(container_id)
        self.running.discard(container_id)

    def close(self) -> None:
        self.close_calls += 1


@pytest.fixture(autouse=True)
def reset_debug_logger():
    """Give every test a fresh, disabled debug logger."""
    DebugLogger._instance = None
    yield
    DebugLogger._instance = None


@pytest.fixture
def fake_control():
    return FakeControlPlane()


@pytest.fixture
def runner_config():
    return RunnerConfig(
        image="yz-sandbox:test",
        memory_limit_bytes=64 * 1024 * 1024,
        max_execution_time=5.0,
        working_dir="/workspace",
        compiler="yzc",
    )


@pytest.fixture
def runner_factory(fake_control):
    """Pool runner factory whose runners all share ``fake_control``."""

    def factory(key: str, config: RunnerConfig) -> IsolatedRunner:
        return IsolatedRunner.open(key, config, control_plane=fake_control)

    return factory


@pytest.fixture
def failing_factory():
    def factory(key: str, config: RunnerConfig) -> IsolatedRunner:
        raise ControlPlaneError("docker daemon unreachable")

    return factory


@pytest.fixture
def sample_run_output():
    """Raw stream as the toolchain prints it for a hello-world program."""
    return (
        b"yzc build main.yz\n"
        b"Built: /tmp/build/app\n"
        b"running generated app\n"
        b"Hello, World!\n"
        b"\n"
        b"Execution completed\n"
    )


@pytest.fixture
def sample_generated_output():
    return (
        b"=== Generated Code ===\n"
        b"package main\n"
        b'import "fmt"\n'
        b'func main() { fmt.Println("Hello") }\n'
        b"=== End Generated Code ===\n"
        b"Built: /tmp/build/app\n"
        b"Hello\n"
    )
