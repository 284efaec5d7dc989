"""
Sandboxed execution: isolated runners, the pool that owns them, and the
sanitizer that cleans their output.
"""

from .control import (
    ControlPlane,
    DoctorCheck,
    EnvironmentSpec,
    ExecCapture,
    create_control_plane,
    detect_control_plane_health,
    run_sandbox_doctor,
)
from .output import NO_OUTPUT_MESSAGE, SanitizedOutput, sanitize_output, strip_stream_debris
from .pool import ExecutionPool, PoolStats
from .runner import IsolatedRunner, RunnerConfig, RunOutcome, build_source_archive

__all__ = [
    "NO_OUTPUT_MESSAGE",
    "ControlPlane",
    "DoctorCheck",
    "EnvironmentSpec",
    "ExecCapture",
    "ExecutionPool",
    "IsolatedRunner",
    "PoolStats",
    "RunOutcome",
    "RunnerConfig",
    "SanitizedOutput",
    "build_source_archive",
    "create_control_plane",
    "detect_control_plane_health",
    "run_sandbox_doctor",
    "sanitize_output",
    "strip_stream_debris",
]
