"""
Isolation control plane backends.
"""

from .base import ControlPlane, EnvironmentSpec, ExecCapture
from .docker_api import DockerApiControlPlane
from .docker_cli import DockerCliControlPlane, parse_size
from .registry import (
    ControlPlaneHealth,
    DoctorCheck,
    create_control_plane,
    detect_control_plane_health,
    run_sandbox_doctor,
)

__all__ = [
    "ControlPlane",
    "ControlPlaneHealth",
    "DockerApiControlPlane",
    "DockerCliControlPlane",
    "DoctorCheck",
    "EnvironmentSpec",
    "ExecCapture",
    "create_control_plane",
    "detect_control_plane_health",
    "parse_size",
    "run_sandbox_doctor",
]
