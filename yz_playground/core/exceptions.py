"""
Custom exceptions for the Yz Playground sandbox.

Provides specific exception types so callers can tell infrastructure failures
apart from failures of the submitted program.
"""


class PlaygroundError(Exception):
    """Base exception for Yz Playground errors."""

    user_message = "Something went wrong while running your code."
    recovery_hint = "Please try again."


class ConfigurationError(PlaygroundError):
    """Error in configuration."""

    def __init__(self, message: str):
        super().__init__(message)
        self.user_message = "The playground is misconfigured."
        self.recovery_hint = "Check the configuration file and environment variables."


# Sandbox Errors


class SandboxError(PlaygroundError):
    """Base exception for sandbox errors."""


class WorkspaceIOError(SandboxError):
    """Source could not be staged into the sandbox workspace."""

    def __init__(self, message: str):
        super().__init__(f"Workspace I/O failed: {message}")
        self.user_message = "Could not prepare the sandbox workspace."
        self.recovery_hint = "Try again in a moment."


class ControlPlaneError(SandboxError):
    """Creating, inspecting, executing in or removing an environment failed."""

    def __init__(self, message: str, container_id: str | None = None):
        super().__init__(message)
        self.container_id = container_id
        self.user_message = "The sandbox is currently unavailable."
        self.recovery_hint = "Try again in a moment."


class ProcessError(SandboxError):
    """Process inside the environment exited with a nonzero status."""

    def __init__(self, exit_code: int, output: str = ""):
        detail = output.strip() or f"process exited with status {exit_code}"
        super().__init__(detail)
        self.exit_code = exit_code
        self.output = output
        self.user_message = detail
        self.recovery_hint = "Fix the reported problem and run again."


class MemoryLimitError(ProcessError):
    """Process was killed by the runtime, typically for exceeding the memory ceiling."""

    def __init__(self, exit_code: int, output: str = "", limit_bytes: int = 0):
        super().__init__(exit_code, output)
        self.limit_bytes = limit_bytes
        limit = f" ({limit_bytes // (1024 * 1024)} MB)" if limit_bytes else ""
        message = f"Program was killed: memory limit exceeded{limit}"
        if output.strip():
            message = f"{message}\n{output.strip()}"
        self.args = (message,)
        self.user_message = message
        self.recovery_hint = "Reduce the memory your program uses."


class ExecutionTimeoutError(SandboxError):
    """Code execution exceeded its deadline."""

    def __init__(self, timeout: float):
        super().__init__(f"Execution timed out after {timeout:g}s")
        self.timeout = timeout
        self.user_message = f"Your program took longer than {timeout:g} seconds and was stopped."
        self.recovery_hint = "Check for infinite loops or reduce the amount of work."


def format_error_message(error: Exception) -> str:
    """
    Format an error message for display to user.

    Args:
        error: Exception to format

    Returns:
        Formatted error message with recovery hints
    """
    if isinstance(error, PlaygroundError):
        message = error.user_message
        if error.recovery_hint:
            message += f"\n\n{error.recovery_hint}"
        return message
    return str(error)
