"""
Execution engine for the Yz Playground.

Runs one submission end-to-end under a deadline and turns every failure into
a non-success ExecutionResult.
"""

import math
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

from ..core.config import PlaygroundConfig
from ..core.exceptions import (
    ConfigurationError,
    ControlPlaneError,
    ExecutionTimeoutError,
    PlaygroundError,
    ProcessError,
    WorkspaceIOError,
)
from ..core.logging import get_logger
from ..sandbox.pool import ExecutionPool, PoolStats, RunnerFactory

logger = get_logger(__name__)

DEFAULT_SESSION_KEY = "default"
VERSION_SESSION_KEY = "version"

UNAVAILABLE_MESSAGE = "Execution failed: the sandbox is currently unavailable"
WORKSPACE_MESSAGE = "Execution failed: could not prepare the sandbox workspace"
INTERNAL_MESSAGE = "Execution failed due to an internal error"


@dataclass
class ExecutionResult:
    """Result of running one submission."""

    success: bool
    output: str = ""
    generated_code: str = ""
    error: str = ""
    execution_time_ms: int = 0
    memory_used_bytes: int = 0

    def __bool__(self) -> bool:
        """Allow using as boolean."""
        return self.success

    def to_dict(self) -> dict[str, Any]:
        """Serialize with the response field names clients already consume."""
        return {
            "success": self.success,
            "output": self.output,
            "generated_code": self.generated_code,
            "error": self.error,
            "execution_time": self.execution_time_ms,
            "memory_used": self.memory_used_bytes,
        }


class ExecutionEngine:
    """Resolves a runner from the pool and runs a submission under a deadline."""

    def __init__(
        self,
        pool: ExecutionPool,
        default_session_key: str = DEFAULT_SESSION_KEY,
        version_session_key: str = VERSION_SESSION_KEY,
        recycle_on_timeout: bool = True,
    ):
        """
        Initialize execution engine.

        Args:
            pool: Pool owning the runners
            default_session_key: Key shared by ordinary executions
            version_session_key: Key used for toolchain version probes
            recycle_on_timeout: Release the session after a timeout so the next
                run starts in a fresh environment
        """
        self.pool = pool
        self.default_session_key = default_session_key
        self.version_session_key = version_session_key
        self.recycle_on_timeout = recycle_on_timeout

    @classmethod
    def from_config(
        cls,
        config: PlaygroundConfig,
        runner_factory: RunnerFactory | None = None,
    ) -> "ExecutionEngine":
        sandbox = config.sandbox
        return cls(
            ExecutionPool(config, runner_factory=runner_factory),
            default_session_key=sandbox.default_session_key,
            version_session_key=sandbox.version_session_key,
            recycle_on_timeout=sandbox.recycle_on_timeout,
        )

    def execute_with_timeout(
        self,
        code: str,
        timeout: float | timedelta | None = None,
        show_generated_code: bool = False,
        session_key: str | None = None,
    ) -> ExecutionResult:
        """
        Run ``code`` and report the outcome; never raises.

        Args:
            code: Submitted source text
            timeout: Seconds (or timedelta) from now; defaults to the configured ceiling
            show_generated_code: Also capture the compiler's generated code
            session_key: Environment to use; defaults to the shared default key

        Returns:
            ExecutionResult with elapsed time measured whatever the outcome
        """
        start = time.perf_counter()
        seconds = self._resolve_timeout(timeout)
        deadline = time.monotonic() + seconds
        key = session_key or self.default_session_key
        runner = None

        try:
            runner = self.pool.acquire(key)
            runner.inject(code)
            outcome = runner.run(show_generated_code=show_generated_code, deadline=deadline)
            elapsed_ms = self._elapsed_ms(start)
        except ExecutionTimeoutError:
            logger.warning(f"Execution in session '{key}' timed out after {seconds:g}s")
            # Recycle only environments whose run was aborted.
            if self.recycle_on_timeout and runner is not None and runner.suspect:
                self._recycle(key)
            return self._failure(f"Execution timed out after {seconds:g} seconds", start)
        except ProcessError as exc:
            logger.debug(f"Execution in session '{key}' failed with exit code {exc.exit_code}")
            return self._failure(str(exc), start)
        except WorkspaceIOError as exc:
            logger.error(f"Workspace preparation failed in session '{key}': {exc}")
            return self._failure(WORKSPACE_MESSAGE, start)
        except (ControlPlaneError, ConfigurationError) as exc:
            logger.error(f"Sandbox unavailable for session '{key}': {exc}")
            return self._failure(UNAVAILABLE_MESSAGE, start)
        except Exception:
            logger.exception(f"Unexpected failure executing in session '{key}'")
            return self._failure(INTERNAL_MESSAGE, start)

        memory_used = runner.memory_usage()
        logger.debug(f"Execution in session '{key}' succeeded in {elapsed_ms}ms")
        return ExecutionResult(
            success=True,
            output=outcome.output,
            generated_code=outcome.generated_code if show_generated_code else "",
            error="",
            execution_time_ms=elapsed_ms,
            memory_used_bytes=memory_used,
        )

    def execute(self, code: str, show_generated_code: bool = False) -> ExecutionResult:
        """Run ``code`` with the configured execution ceiling."""
        return self.execute_with_timeout(code, None, show_generated_code=show_generated_code)

    def get_toolchain_version(self) -> str:
        """Return the compiler version from the dedicated version-probe environment."""
        runner = self.pool.acquire(self.version_session_key)
        return runner.get_toolchain_version()

    def validate_toolchain(self) -> None:
        """Raise unless the compiler is reachable and answers its version command."""
        runner = self.pool.acquire(self.version_session_key)
        runner.validate_toolchain()

    def stats(self) -> PoolStats:
        return self.pool.stats()

    def shutdown(self) -> None:
        self.pool.shutdown()

    def _resolve_timeout(self, timeout: float | timedelta | None) -> float:
        if timeout is None:
            return self.pool.config.max_execution_time
        if isinstance(timeout, timedelta):
            return max(0.0, timeout.total_seconds())
        return max(0.0, float(timeout))

    def _recycle(self, key: str) -> None:
        try:
            self.pool.release(key)
        except PlaygroundError as exc:
            logger.warning(f"Could not recycle session '{key}' after timeout: {exc}")

    @staticmethod
    def _elapsed_ms(start: float) -> int:
        return max(0, math.ceil((time.perf_counter() - start) * 1000))

    def _failure(self, error: str, start: float) -> ExecutionResult:
        return ExecutionResult(
            success=False,
            output="",
            generated_code="",
            error=error,
            execution_time_ms=self._elapsed_ms(start),
            memory_used_bytes=0,
        )
