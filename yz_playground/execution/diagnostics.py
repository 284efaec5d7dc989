"""
Compile error parsing for friendlier error display.
"""

from dataclasses import asdict, dataclass, field
from typing import Any


@dataclass
class CompileDiagnostic:
    """Position information extracted from compiler output."""

    raw_error: str
    lines: list[str] = field(default_factory=list)
    file: str | None = None
    line: str | None = None
    message: str | None = None

    @property
    def has_location(self) -> bool:
        return self.file is not None

    def to_dict(self) -> dict[str, Any]:
        return {key: value for key, value in asdict(self).items() if value is not None}


def parse_compile_error(error_output: str) -> CompileDiagnostic:
    """
    Extract file, line and message from compiler error output.

    The first line that contains ``:`` and mentions ``error`` or ``Error`` and
    splits into at least three ``:`` parts provides the location, e.g.
    ``main.yz:3: error: unexpected token``.
    """
    lines = (error_output or "").strip().split("\n")
    diagnostic = CompileDiagnostic(raw_error=error_output or "", lines=lines)

    for line in lines:
        if ":" in line and ("error" in line or "Error" in line):
            parts = line.split(":")
            if len(parts) >= 3:
                diagnostic.file = parts[0].strip()
                diagnostic.line = parts[1].strip()
                diagnostic.message = ":".join(parts[2:]).strip()
            break

    return diagnostic
