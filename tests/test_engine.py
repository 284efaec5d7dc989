"""Tests for the execution engine façade."""

import time
from datetime import timedelta

import pytest

from yz_playground.core.config import PlaygroundConfig
from yz_playground.core.exceptions import ExecutionTimeoutError, WorkspaceIOError
from yz_playground.execution import ExecutionEngine, ExecutionResult
from yz_playground.execution.engine import (
    INTERNAL_MESSAGE,
    UNAVAILABLE_MESSAGE,
    WORKSPACE_MESSAGE,
)
from yz_playground.sandbox.control import ExecCapture
from yz_playground.sandbox.pool import ExecutionPool


@pytest.fixture
def engine(runner_config, runner_factory):
    return ExecutionEngine(ExecutionPool(runner_config, runner_factory=runner_factory))


def test_hello_program_succeeds(engine, fake_control):
    fake_control.exec_results.append(ExecCapture(0, b"Built: ok\nhello\n"))

    result = engine.execute_with_timeout('main: { print("hello") }')
    assert result.success is True
    assert result.output == "hello"
    assert result.error == ""
    assert result.generated_code == ""
    assert result.memory_used_bytes == 4 * 1024 * 1024
    assert bool(result) is True


def test_compile_error_reported(engine, fake_control):
    fake_control.exec_results.append(
        ExecCapture(1, b"main.yz:1: error: expected '}' but found end of file\n")
    )

    result = engine.execute_with_timeout("main: {")
    assert result.success is False
    assert "expected '}'" in result.error
    assert result.output == ""
    assert result.execution_time_ms > 0
    assert result.memory_used_bytes == 0


def test_runaway_program_times_out(engine, fake_control):
    def hang(command, timeout):
        time.sleep(timeout)
        raise ExecutionTimeoutError(timeout)

    fake_control.exec_results.append(hang)

    start = time.monotonic()
    result = engine.execute_with_timeout("main: { loop {} }", timeout=0.2)
    wall = time.monotonic() - start

    assert result.success is False
    assert result.error == "Execution timed out after 0.2 seconds"
    assert 0.15 <= wall < 1.0
    assert 150 <= result.execution_time_ms < 1000
    assert fake_control.terminated


def test_timeout_recycles_session(engine, fake_control):
    fake_control.exec_results.append("timeout")

    engine.execute_with_timeout("main: { loop {} }", timeout=1)
    assert "default" not in engine.pool
    assert len(fake_control.removed) == 1

    fake_control.exec_results.append(ExecCapture(0, b"fresh\n"))
    result = engine.execute_with_timeout("main: {}")
    assert result.output == "fresh"
    assert len(fake_control.created) == 2


def test_timeout_without_recycle_keeps_runner(runner_config, runner_factory, fake_control):
    engine = ExecutionEngine(
        ExecutionPool(runner_config, runner_factory=runner_factory),
        recycle_on_timeout=False,
    )
    fake_control.exec_results.append("timeout")

    result = engine.execute_with_timeout("main: { loop {} }", timeout=1)
    assert result.success is False
    assert "default" in engine.pool
    assert engine.pool.get("default").suspect is True


def test_timedelta_timeout(engine, fake_control):
    engine.execute_with_timeout("main: {}", timeout=timedelta(milliseconds=750))
    assert fake_control.commands[0]["timeout"] <= 0.75


def test_default_timeout_is_configured_ceiling(engine, fake_control):
    engine.execute("main: {}")
    assert fake_control.commands[0]["timeout"] <= 5.0
    assert fake_control.commands[0]["timeout"] > 4.0


def test_zero_timeout_fails_fast(engine, fake_control):
    result = engine.execute_with_timeout("main: {}", timeout=0)
    assert result.success is False
    assert "timed out" in result.error
    assert fake_control.commands == []
    assert "default" in engine.pool


def test_slow_environment_start_is_not_recycled(engine, fake_control):
    fake_control.create_delay = 0.3

    result = engine.execute_with_timeout("main: {}", timeout=0.2)
    assert result.error == "Execution timed out after 0.2 seconds"
    assert fake_control.removed == []
    assert "default" in engine.pool

    # The environment created for the first call serves the next ones.
    fake_control.exec_results.append(ExecCapture(0, b"second run\n"))
    result = engine.execute_with_timeout("main: {}", timeout=0.2)
    assert result.output == "second run"
    assert len(fake_control.created) == 1
    assert len(fake_control.commands) == 1


def test_memory_sampling_not_counted_in_execution_time(engine, fake_control):
    fake_control.memory_delay = 0.5
    fake_control.exec_results.append(ExecCapture(0, b"quick\n"))

    result = engine.execute_with_timeout("main: {}")
    assert result.success is True
    assert result.memory_used_bytes == 4 * 1024 * 1024
    assert result.execution_time_ms < 400


def test_generated_code_returned_when_requested(engine, fake_control, sample_generated_output):
    fake_control.exec_results.append(ExecCapture(0, sample_generated_output))

    result = engine.execute_with_timeout("main: {}", show_generated_code=True)
    assert result.success is True
    assert result.output == "Hello"
    assert result.generated_code.startswith("package main")


def test_session_key_selects_runner(engine, fake_control):
    engine.execute_with_timeout("main: {}", session_key="alice")
    engine.execute_with_timeout("main: {}")
    assert "alice" in engine.pool
    assert "default" in engine.pool
    assert len(fake_control.created) == 2


def test_unavailable_sandbox_gives_generic_message(runner_config, failing_factory):
    engine = ExecutionEngine(ExecutionPool(runner_config, runner_factory=failing_factory))

    result = engine.execute_with_timeout("main: {}")
    assert result.success is False
    assert result.error == UNAVAILABLE_MESSAGE
    assert "daemon" not in result.error


def test_workspace_failure_gives_generic_message(engine, fake_control):
    def broken_inject(container_id, dest_dir, archive):
        raise WorkspaceIOError("disk full")

    fake_control.inject_archive = broken_inject

    result = engine.execute_with_timeout("main: {}")
    assert result.success is False
    assert result.error == WORKSPACE_MESSAGE


def test_unexpected_failure_never_raises(runner_config):
    def exploding_factory(key, config):
        raise RuntimeError("boom")

    engine = ExecutionEngine(ExecutionPool(runner_config, runner_factory=exploding_factory))
    result = engine.execute_with_timeout("main: {}")
    assert result.success is False
    assert result.error == INTERNAL_MESSAGE


def test_memory_limit_reported(engine, fake_control):
    fake_control.exec_results.append(ExecCapture(137, b""))

    result = engine.execute_with_timeout("main: { grow() }")
    assert result.success is False
    assert result.error.startswith("Program was killed: memory limit exceeded")


def test_get_toolchain_version_uses_version_key(engine, fake_control):
    fake_control.exec_results.append(ExecCapture(0, b"yzc 0.9.1\n"))

    assert engine.get_toolchain_version() == "yzc 0.9.1"
    assert "version" in engine.pool
    assert "default" not in engine.pool


def test_stats_and_shutdown(engine):
    engine.execute_with_timeout("main: {}")
    assert engine.stats().active_count == 1

    engine.shutdown()
    assert engine.stats().active_count == 0


def test_from_config_uses_configured_keys(runner_factory, fake_control):
    config = PlaygroundConfig()
    config.sandbox.default_session_key = "shared"
    config.sandbox.version_session_key = "toolchain"

    engine = ExecutionEngine.from_config(config, runner_factory=runner_factory)
    engine.execute_with_timeout("main: {}")
    assert "shared" in engine.pool
    assert engine.default_session_key == "shared"
    assert engine.version_session_key == "toolchain"


def test_result_to_dict():
    result = ExecutionResult(
        success=True,
        output="hello",
        execution_time_ms=12,
        memory_used_bytes=2048,
    )
    assert result.to_dict() == {
        "success": True,
        "output": "hello",
        "generated_code": "",
        "error": "",
        "execution_time": 12,
        "memory_used": 2048,
    }
