"""
Yz Playground - sandboxed execution of untrusted Yz programs.
"""

from .core.config import PlaygroundConfig
from .execution import ExecutionEngine, ExecutionResult
from .sandbox import ExecutionPool, IsolatedRunner, sanitize_output

__version__ = "0.1.0"

__all__ = [
    "ExecutionEngine",
    "ExecutionPool",
    "ExecutionResult",
    "IsolatedRunner",
    "PlaygroundConfig",
    "__version__",
    "sanitize_output",
]
