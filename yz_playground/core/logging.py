"""
Logging setup for the Yz Playground sandbox.
"""

import logging

from rich.console import Console
from rich.logging import RichHandler

_ROOT_LOGGER = "yz_playground"
_configured = False


def setup_logging(level: str | int = "INFO", verbose: bool = False) -> logging.Logger:
    """
    Configure package logging with a Rich console handler.

    Args:
        level: Log level name or number
        verbose: Force DEBUG level and show file paths

    Returns:
        The package root logger
    """
    global _configured

    if isinstance(level, str):
        resolved = logging.getLevelName(level.strip().upper())
        if not isinstance(resolved, int):
            resolved = logging.INFO
    else:
        resolved = level
    if verbose:
        resolved = logging.DEBUG

    root = logging.getLogger(_ROOT_LOGGER)
    root.setLevel(resolved)

    if not _configured:
        handler = RichHandler(
            console=Console(stderr=True),
            show_path=verbose,
            rich_tracebacks=True,
            markup=False,
        )
        handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))
        root.addHandler(handler)
        root.propagate = False
        _configured = True

    return root


def get_logger(name: str) -> logging.Logger:
    """Return a logger under the package namespace."""
    if name == _ROOT_LOGGER or name.startswith(_ROOT_LOGGER + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{_ROOT_LOGGER}.{name}")
