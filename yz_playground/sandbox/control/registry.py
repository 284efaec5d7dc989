"""
Control plane registry and health checks.
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from ...core.config import SUPPORTED_CONTROL_PLANES
from ...core.exceptions import ConfigurationError, PlaygroundError
from ...core.logging import get_logger
from .base import ControlPlane
from .docker_api import DockerApiControlPlane
from .docker_cli import DockerCliControlPlane

logger = get_logger(__name__)


@dataclass(slots=True)
class ControlPlaneHealth:
    """Availability information for a control plane backend."""

    control_plane: str
    available: bool
    detail: str


@dataclass(slots=True)
class DoctorCheck:
    """Detailed doctor check for sandbox diagnostics."""

    name: str
    status: str  # pass | warn | fail
    detail: str
    recommendation: str | None = None


def create_control_plane(name: str, sandbox_config: Any = None) -> ControlPlane:
    """Create a control plane backend from its configured name."""
    normalized = (name or "docker-cli").strip().lower()
    control_timeout = float(getattr(sandbox_config, "control_timeout_seconds", 30.0) or 30.0)

    if normalized == "docker-cli":
        return DockerCliControlPlane(
            docker_binary=str(getattr(sandbox_config, "docker_binary", "docker") or "docker"),
            control_timeout=control_timeout,
        )
    if normalized == "docker-api":
        return DockerApiControlPlane(control_timeout=control_timeout)

    raise ConfigurationError(
        f"Unsupported control plane '{name}'. Supported: {', '.join(SUPPORTED_CONTROL_PLANES)}"
    )


def detect_control_plane_health(docker_binary: str = "docker") -> dict[str, ControlPlaneHealth]:
    """Probe control plane availability for diagnostics."""
    cli_ok, cli_detail = DockerCliControlPlane.check_health(docker_binary)
    api_ok, api_detail = DockerApiControlPlane.check_health()
    results = [
        ControlPlaneHealth(control_plane="docker-cli", available=cli_ok, detail=cli_detail),
        ControlPlaneHealth(control_plane="docker-api", available=api_ok, detail=api_detail),
    ]
    return {entry.control_plane: entry for entry in results}


def run_sandbox_doctor(
    sandbox_config: Any,
    version_probe: Callable[[], str] | None = None,
) -> list[DoctorCheck]:
    """
    Run detailed diagnostics for the sandbox setup.

    Args:
        sandbox_config: SandboxConfig-like object
        version_probe: Optional callable returning the toolchain version; it is
            only invoked when the control plane is healthy

    Returns:
        Ordered list of checks
    """
    checks: list[DoctorCheck] = []
    name = str(getattr(sandbox_config, "control_plane", "docker-cli") or "docker-cli").lower()
    docker_binary = str(getattr(sandbox_config, "docker_binary", "docker") or "docker")

    if name not in SUPPORTED_CONTROL_PLANES:
        checks.append(
            DoctorCheck(
                name="configured_control_plane",
                status="fail",
                detail=f"Unsupported control plane '{name}'.",
                recommendation=f"Use one of: {', '.join(SUPPORTED_CONTROL_PLANES)}.",
            )
        )
        return checks

    checks.append(
        DoctorCheck(
            name="configured_control_plane",
            status="pass",
            detail=f"Control plane set to '{name}'.",
        )
    )

    if name == "docker-cli":
        healthy, detail = DockerCliControlPlane.check_health(docker_binary)
    else:
        healthy, detail = DockerApiControlPlane.check_health()
    checks.append(
        DoctorCheck(
            name="docker_daemon",
            status="pass" if healthy else "fail",
            detail=detail,
            recommendation=None if healthy else "Start Docker and retry 'yz-playground doctor'.",
        )
    )
    if not healthy:
        return checks

    container_name = getattr(sandbox_config, "container_name", None)
    if container_name:
        control_plane = create_control_plane(name, sandbox_config)
        try:
            running = control_plane.is_running(container_name)
        except PlaygroundError:
            running = False
        finally:
            control_plane.close()
        checks.append(
            DoctorCheck(
                name="attached_environment",
                status="pass" if running else "fail",
                detail=f"Container '{container_name}' is "
                + ("running." if running else "not running."),
                recommendation=None
                if running
                else f"Start it with: docker start {container_name}",
            )
        )
    else:
        image = str(getattr(sandbox_config, "image", "") or "")
        present = DockerCliControlPlane.image_available(image, docker_binary)
        checks.append(
            DoctorCheck(
                name="sandbox_image",
                status="pass" if present else "warn",
                detail=f"Image '{image}' is "
                + ("available locally." if present else "not present locally."),
                recommendation=None if present else f"Build or pull the image: {image}",
            )
        )

    network_enabled = bool(getattr(sandbox_config, "network_enabled", False))
    checks.append(
        DoctorCheck(
            name="network_policy",
            status="warn" if network_enabled else "pass",
            detail="Environment networking is enabled."
            if network_enabled
            else "Environment networking is disabled.",
            recommendation="Set sandbox.network_enabled=false unless submissions need network access."
            if network_enabled
            else None,
        )
    )

    privileged = bool(getattr(sandbox_config, "privileged", False))
    checks.append(
        DoctorCheck(
            name="privilege_policy",
            status="warn" if privileged else "pass",
            detail="Environments run privileged." if privileged else "Environments run unprivileged.",
            recommendation="Only enable sandbox.privileged when the in-environment isolation layer needs it."
            if privileged
            else None,
        )
    )

    if version_probe is not None:
        try:
            version = version_probe()
        except PlaygroundError as exc:
            checks.append(
                DoctorCheck(
                    name="toolchain",
                    status="fail",
                    detail=f"Toolchain version probe failed: {exc}",
                    recommendation="Check toolchain.compiler and that the image ships the compiler.",
                )
            )
        else:
            checks.append(DoctorCheck(name="toolchain", status="pass", detail=version))

    return checks
