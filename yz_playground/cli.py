"""
Command line interface for the Yz Playground sandbox.

  yz-playground run program.yz [--timeout 5] [--show-generated-code]
  yz-playground version
  yz-playground doctor
"""

import argparse
import json
import sys
from pathlib import Path

from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text

from .core.config import ConfigManager, PlaygroundConfig
from .core.debug_logger import DebugLogger
from .core.exceptions import ConfigurationError, PlaygroundError, format_error_message
from .core.logging import get_logger, setup_logging
from .execution import ExecutionEngine, parse_compile_error
from .sandbox.control import run_sandbox_doctor

console = Console()
logger = get_logger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2

_STATUS_STYLES = {"pass": "green", "warn": "yellow", "fail": "red"}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="yz-playground",
        description="Run Yz programs inside an isolated sandbox.",
    )
    parser.add_argument("--config", type=Path, help="Path to yz_playground.yaml")
    parser.add_argument("--verbose", action="store_true", help="Verbose logging")
    parser.add_argument(
        "--debug", action="store_true", help="Trace sandbox timings and control-plane calls"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    run = subparsers.add_parser("run", help="Compile and run a source file")
    run.add_argument("file", type=Path, help="Source file, or '-' for stdin")
    run.add_argument("--timeout", type=float, help="Deadline in seconds")
    run.add_argument(
        "--show-generated-code", action="store_true", help="Also print the generated code"
    )
    run.add_argument("--session", help="Session key selecting the environment")
    run.add_argument("--json", action="store_true", help="Print the result as JSON")

    subparsers.add_parser("version", help="Print the toolchain version")
    subparsers.add_parser("doctor", help="Diagnose the sandbox setup")
    return parser


def load_config(config_path: Path | None) -> PlaygroundConfig:
    manager = ConfigManager(config_path=config_path) if config_path else ConfigManager()
    if config_path and not config_path.exists():
        raise ConfigurationError(f"Configuration file not found: {config_path}")
    return manager.load_config()


def cmd_run(args: argparse.Namespace, config: PlaygroundConfig, engine: ExecutionEngine) -> int:
    if str(args.file) == "-":
        code = sys.stdin.read()
    else:
        try:
            code = args.file.read_text(encoding="utf-8")
        except OSError as e:
            console.print(Text(f"Cannot read {args.file}: {e}", style="red"))
            return EXIT_CONFIG

    if len(code.encode("utf-8")) > config.max_code_size:
        console.print(
            f"[red]Source is larger than the {config.max_code_size} byte limit.[/red]"
        )
        return EXIT_FAILED

    result = engine.execute_with_timeout(
        code,
        args.timeout,
        show_generated_code=args.show_generated_code,
        session_key=args.session,
    )

    if args.json:
        console.print_json(json.dumps(result.to_dict()))
        return EXIT_OK if result.success else EXIT_FAILED

    if result.generated_code:
        console.print(
            Panel(
                Syntax(result.generated_code, "go", theme="monokai", line_numbers=True),
                title="Generated Code",
                border_style="blue",
            )
        )

    if result.success:
        console.print(Panel(Text(result.output), title="Output", border_style="green"))
    else:
        console.print(Panel(Text(result.error), title="Error", border_style="red"))
        diagnostic = parse_compile_error(result.error)
        if diagnostic.has_location:
            location = Text(f"{diagnostic.file}:{diagnostic.line}", style="yellow")
            console.print(Text.assemble(location, " ", diagnostic.message))

    memory_mb = result.memory_used_bytes / (1024 * 1024)
    console.print(f"[dim]{result.execution_time_ms} ms, {memory_mb:.1f} MB[/dim]")
    return EXIT_OK if result.success else EXIT_FAILED


def cmd_version(engine: ExecutionEngine) -> int:
    console.print(Text(engine.get_toolchain_version()))
    return EXIT_OK


def cmd_doctor(config: PlaygroundConfig, engine: ExecutionEngine) -> int:
    checks = run_sandbox_doctor(config.sandbox, version_probe=engine.get_toolchain_version)

    table = Table(title="Sandbox Doctor")
    table.add_column("Check", style="cyan")
    table.add_column("Status")
    table.add_column("Detail")
    table.add_column("Recommendation", style="dim")
    for check in checks:
        style = _STATUS_STYLES.get(check.status, "white")
        table.add_row(
            check.name,
            f"[{style}]{check.status}[/{style}]",
            Text(check.detail),
            Text(check.recommendation or ""),
        )
    console.print(table)
    return EXIT_FAILED if any(c.status == "fail" for c in checks) else EXIT_OK


def print_debug_stats() -> None:
    tracer = DebugLogger.get_instance()
    timings = tracer.get_timing_stats()
    if timings:
        table = Table(title="Timings")
        table.add_column("Operation", style="cyan")
        table.add_column("Count", justify="right")
        table.add_column("Avg (s)", justify="right")
        table.add_column("Max (s)", justify="right")
        for name, stats in sorted(timings.items()):
            table.add_row(name, str(stats["count"]), f"{stats['avg']:.3f}", f"{stats['max']:.3f}")
        console.print(table)

    calls = tracer.get_control_plane_stats()
    if calls["total_calls"]:
        console.print(
            f"[dim]{calls['total_calls']} control-plane call(s), "
            f"{calls['failed_calls']} failed, {calls['total_time']:.3f}s[/dim]"
        )


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args.config)
    except ConfigurationError as e:
        console.print(Text(str(e), style="red"))
        return EXIT_CONFIG

    setup_logging(config.log_level, verbose=args.verbose)
    if args.debug:
        DebugLogger.get_instance().enable()

    engine = ExecutionEngine.from_config(config)
    try:
        if args.command == "run":
            return cmd_run(args, config, engine)
        if args.command == "version":
            return cmd_version(engine)
        return cmd_doctor(config, engine)
    except ConfigurationError as e:
        console.print(Text(format_error_message(e), style="red"))
        return EXIT_CONFIG
    except PlaygroundError as e:
        logger.debug(f"Command failed: {e}")
        console.print(Text(format_error_message(e), style="red"))
        return EXIT_FAILED
    finally:
        try:
            engine.shutdown()
        except PlaygroundError as e:
            logger.warning(f"Sandbox cleanup failed: {e}")
        if args.debug:
            print_debug_stats()


if __name__ == "__main__":
    sys.exit(main())
