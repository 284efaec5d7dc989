"""
Opt-in tracing of sandbox operations.

Enabled by ``yz-playground --debug``. Records how long environment creation,
source injection and runs take, and every call made to the control plane.
"""

import logging
import threading
import time
from collections import Counter
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)


@dataclass
class OperationTiming:
    """Samples collected for one named sandbox operation."""

    samples: list[float] = field(default_factory=list)

    def summary(self) -> dict[str, float]:
        count = len(self.samples)
        total = sum(self.samples)
        return {
            "count": count,
            "total": total,
            "avg": total / count if count else 0.0,
            "min": min(self.samples, default=0.0),
            "max": max(self.samples, default=0.0),
        }


@dataclass(frozen=True, slots=True)
class ControlPlaneCall:
    """One request made to the isolation runtime."""

    operation: str
    container_id: str | None
    elapsed: float
    error: str | None = None
    timestamp: float = field(default_factory=time.time)

    @property
    def succeeded(self) -> bool:
        return self.error is None


class DebugLogger:
    """Process-wide tracer shared by every runner and control plane."""

    _instance: "DebugLogger | None" = None
    _instance_lock = threading.Lock()

    def __init__(self, enabled: bool = False):
        self.enabled = enabled
        self._timings: dict[str, OperationTiming] = {}
        self._calls: list[ControlPlaneCall] = []
        # Runners on different session keys report concurrently.
        self._lock = threading.Lock()

    @classmethod
    def get_instance(cls) -> "DebugLogger":
        with cls._instance_lock:
            if cls._instance is None:
                cls._instance = cls()
            return cls._instance

    def enable(self) -> None:
        self.enabled = True

    def disable(self) -> None:
        self.enabled = False

    @contextmanager
    def timed_operation(self, name: str) -> Iterator[None]:
        """Time the enclosed block under ``name`` when tracing is enabled."""
        if not self.enabled:
            yield
            return

        start = time.perf_counter()
        try:
            yield
        finally:
            elapsed = time.perf_counter() - start
            with self._lock:
                self._timings.setdefault(name, OperationTiming()).samples.append(elapsed)
            logger.debug(f"[timing] {name}: {elapsed:.3f}s")

    def log_control_plane_call(
        self,
        operation: str,
        container_id: str | None,
        elapsed: float,
        error: str | None = None,
    ) -> None:
        """
        Record one control-plane call.

        Args:
            operation: create, inject, exec, inspect, stats, remove, ...
            container_id: Environment the call targeted, if any
            elapsed: Seconds the call took
            error: Failure detail; None when the call succeeded
        """
        if not self.enabled:
            return

        call = ControlPlaneCall(operation, container_id, elapsed, error)
        with self._lock:
            self._calls.append(call)

        status = "ok" if call.succeeded else f"failed: {error}"
        logger.debug(
            f"[control] {operation} env={(container_id or '-')[:12]} "
            f"{elapsed:.3f}s {status}"
        )

    def get_timing_stats(self) -> dict[str, dict[str, float]]:
        with self._lock:
            return {name: timing.summary() for name, timing in self._timings.items()}

    def get_control_plane_stats(self) -> dict[str, Any]:
        with self._lock:
            calls = list(self._calls)
        return {
            "total_calls": len(calls),
            "failed_calls": sum(1 for call in calls if not call.succeeded),
            "total_time": sum(call.elapsed for call in calls),
            "by_operation": dict(Counter(call.operation for call in calls)),
        }
