"""
Execution pool: maps session keys to isolated runners.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

from ..core.config import PlaygroundConfig
from ..core.logging import get_logger
from .runner import IsolatedRunner, RunnerConfig

logger = get_logger(__name__)

RunnerFactory = Callable[[str, RunnerConfig], IsolatedRunner]


@dataclass(frozen=True, slots=True)
class PoolStats:
    """Read-only snapshot of pool state."""

    active_count: int
    max_memory_bytes: int
    max_execution_time_seconds: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "active_sandboxes": self.active_count,
            "max_memory": self.max_memory_bytes,
            "max_execution_time": self.max_execution_time_seconds,
        }


class _KeyGuard:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = threading.Lock()
        # Callers holding or waiting on ``lock``; the guard is dropped at zero.
        self.users = 0


class ExecutionPool:
    """
    Single source of truth for which runner backs which session key.

    At most one runner exists per key. The registry lock is only held around
    map reads and writes; a per-key guard serializes construction and removal
    for that key so a slow environment start never blocks other keys. Guards
    live only while some caller holds or waits on them.
    """

    def __init__(
        self,
        config: RunnerConfig | PlaygroundConfig,
        runner_factory: RunnerFactory | None = None,
    ):
        if isinstance(config, PlaygroundConfig):
            config = RunnerConfig.from_config(config)
        self.config = config
        self._runner_factory = runner_factory or IsolatedRunner.open
        self._runners: dict[str, IsolatedRunner] = {}
        self._key_guards: dict[str, _KeyGuard] = {}
        self._lock = threading.Lock()

    def acquire(self, key: str) -> IsolatedRunner:
        """Return the runner for ``key``, creating it on first use."""
        with self._lock:
            runner = self._runners.get(key)
            if runner is not None:
                return runner

        with self._guarded(key):
            with self._lock:
                runner = self._runners.get(key)
                if runner is not None:
                    return runner

            logger.debug(f"Creating runner for session '{key}'")
            runner = self._runner_factory(key, self.config)

            with self._lock:
                self._runners[key] = runner
            return runner

    def get(self, key: str) -> IsolatedRunner | None:
        """Return the registered runner for ``key`` without creating one."""
        with self._lock:
            return self._runners.get(key)

    def release(self, key: str) -> None:
        """Close and remove the runner for ``key``; no-op when absent."""
        with self._lock:
            if key not in self._runners:
                return

        with self._guarded(key):
            with self._lock:
                runner = self._runners.pop(key, None)
            if runner is None:
                return
            # The entry is gone even if close fails; a half-closed runner is never reused.
            runner.close()
            logger.debug(f"Released runner for session '{key}'")

    def shutdown(self) -> None:
        """
        Close and remove every runner.

        Every runner is closed even when some fail; the last failure is
        re-raised afterwards.
        """
        with self._lock:
            keys = list(self._runners)

        last_error: Exception | None = None
        failures = 0
        for key in keys:
            try:
                self.release(key)
            except Exception as exc:
                failures += 1
                last_error = exc
                logger.error(f"Failed to close runner for session '{key}': {exc}")

        if last_error is not None:
            logger.error(f"Pool shutdown finished with {failures} failure(s)")
            raise last_error

    def stats(self) -> PoolStats:
        with self._lock:
            active = len(self._runners)
        return PoolStats(
            active_count=active,
            max_memory_bytes=self.config.memory_limit_bytes,
            max_execution_time_seconds=self.config.max_execution_time,
        )

    @contextmanager
    def _guarded(self, key: str) -> Iterator[None]:
        """Hold the per-key guard, creating it on demand and dropping it when unused."""
        with self._lock:
            guard = self._key_guards.get(key)
            if guard is None:
                guard = self._key_guards[key] = _KeyGuard()
            guard.users += 1
        try:
            with guard.lock:
                yield
        finally:
            with self._lock:
                guard.users -= 1
                if guard.users == 0:
                    del self._key_guards[key]

    def __len__(self) -> int:
        with self._lock:
            return len(self._runners)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._runners

    def __enter__(self) -> "ExecutionPool":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()
