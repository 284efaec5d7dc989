"""
Output sanitizer for captured sandbox streams.

Turns the raw bytes captured from ``exec`` inside an environment into the
program output shown to the user and, when requested, the generated-code
section the compiler prints between its sentinel lines.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass

NO_OUTPUT_MESSAGE = "Program executed successfully (no output)"

DEFAULT_GENERATED_CODE_BEGIN = "=== Generated Code ==="
DEFAULT_GENERATED_CODE_END = "=== End Generated Code ==="
DEFAULT_NOISE_MARKERS = (
    "Built:",
    "yzc build",
    "running generated app",
    "Execution completed",
)

# Docker multiplexed stream frame header: stream type (stdout/stderr),
# three zero bytes, then a 4 byte big-endian payload size.
_FRAME_HEADER = re.compile(rb"[\x01\x02]\x00\x00\x00[\x00-\xff]{4}")
_DEBRIS_BYTES = re.compile(rb"[\x00\x1a]")
_CONTROL_CHARS = re.compile(r"[\x01-\x1f]")
# Edge whitespace other than the 0x1C-0x1F separators; those count as control characters.
_EDGE_WHITESPACE = re.compile(r"^[^\S\x1c-\x1f]+|[^\S\x1c-\x1f]+$")


@dataclass(frozen=True, slots=True)
class SanitizedOutput:
    """Program output and generated-code section recovered from a raw stream."""

    program_output: str
    generated_code: str
    has_output: bool

    def __iter__(self):
        # Allows ``output, generated = sanitize_output(...)``.
        yield self.program_output
        yield self.generated_code


def strip_stream_debris(raw: bytes | str | None) -> str:
    """Remove frame headers, NUL and SUB bytes and decode to text."""
    if raw is None:
        return ""
    if isinstance(raw, str):
        data = raw.encode("utf-8", errors="surrogatepass")
    else:
        data = bytes(raw)
    data = _FRAME_HEADER.sub(b"", data)
    data = _DEBRIS_BYTES.sub(b"", data)
    return data.decode("utf-8", errors="replace")


def sanitize_output(
    raw: bytes | str | None,
    show_generated_code: bool = False,
    *,
    begin_marker: str = DEFAULT_GENERATED_CODE_BEGIN,
    end_marker: str = DEFAULT_GENERATED_CODE_END,
    noise_markers: Iterable[str] = DEFAULT_NOISE_MARKERS,
) -> SanitizedOutput:
    """
    Split a raw captured stream into program output and generated code.

    Never raises. Whitespace-only lines are dropped from both sections. Lines
    inside the generated section are kept as-is; outside it, toolchain chatter,
    lines shorter than two characters and lines carrying control characters are
    dropped. An end marker seen outside a generated section is an ordinary line,
    and a begin marker with no end sends everything after it to generated code.

    Args:
        raw: Combined stdout/stderr bytes (or text) captured from the run
        show_generated_code: Whether the sentinel-delimited section was requested
        begin_marker: Line fragment opening the generated section
        end_marker: Line fragment closing the generated section
        noise_markers: Fragments identifying build-tool chatter lines

    Returns:
        SanitizedOutput; ``program_output`` is ``NO_OUTPUT_MESSAGE`` when no
        usable line remains
    """
    text = strip_stream_debris(raw)
    markers = tuple(m for m in noise_markers if m)

    program_lines: list[str] = []
    generated_lines: list[str] = []
    in_generated = False

    for line in text.split("\n"):
        if line.endswith("\r"):
            line = line[:-1]
        trimmed = _EDGE_WHITESPACE.sub("", line)
        if not trimmed:
            continue

        if show_generated_code:
            if begin_marker and begin_marker in trimmed:
                in_generated = True
                continue
            if in_generated and end_marker and end_marker in trimmed:
                in_generated = False
                continue
            if in_generated:
                generated_lines.append(line)
                continue

        if any(marker in trimmed for marker in markers):
            continue
        if len(trimmed) < 2 or _CONTROL_CHARS.search(trimmed):
            continue
        program_lines.append(line)

    program_output = "\n".join(program_lines).strip()
    generated_code = "\n".join(generated_lines).strip()
    has_output = bool(program_output)
    if not has_output:
        program_output = NO_OUTPUT_MESSAGE

    return SanitizedOutput(
        program_output=program_output,
        generated_code=generated_code,
        has_output=has_output,
    )
