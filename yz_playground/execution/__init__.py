"""
Code execution for the Yz Playground.
"""

from .diagnostics import CompileDiagnostic, parse_compile_error
from .engine import DEFAULT_SESSION_KEY, VERSION_SESSION_KEY, ExecutionEngine, ExecutionResult

__all__ = [
    "DEFAULT_SESSION_KEY",
    "VERSION_SESSION_KEY",
    "CompileDiagnostic",
    "ExecutionEngine",
    "ExecutionResult",
    "parse_compile_error",
]
