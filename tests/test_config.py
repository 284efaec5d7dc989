"""Tests for playground configuration loading and validation."""

from pathlib import Path
from textwrap import dedent

import pytest

from yz_playground.core.config import ConfigManager, PlaygroundConfig
from yz_playground.core.exceptions import ConfigurationError


def test_defaults_are_valid():
    config = PlaygroundConfig()
    config.validate()
    assert config.sandbox.control_plane == "docker-cli"
    assert config.sandbox.max_memory_bytes == 256 * 1024 * 1024
    assert config.sandbox.max_execution_time_seconds == 10.0
    assert config.sandbox.default_session_key == "default"
    assert config.sandbox.version_session_key == "version"
    assert config.sandbox.network_enabled is False
    assert config.max_code_size == 10000


def test_load_from_yaml(tmp_path: Path):
    path = tmp_path / "yz_playground.yaml"
    path.write_text(
        dedent(
            """
            sandbox:
              control_plane: docker-api
              image: registry.local/yz-sandbox:1.2
              memory_limit_mb: 128
              max_execution_time_seconds: 3
            toolchain:
              compiler: /usr/local/bin/yzc
              noise_markers: "Compiling"
            max_code_size: 2048
            """
        ),
        encoding="utf-8",
    )

    config = PlaygroundConfig.load_from_file(path)
    assert config.sandbox.control_plane == "docker-api"
    assert config.sandbox.image == "registry.local/yz-sandbox:1.2"
    assert config.sandbox.max_memory_bytes == 128 * 1024 * 1024
    assert config.toolchain.compiler == "/usr/local/bin/yzc"
    assert config.toolchain.noise_markers == ["Compiling"]
    assert config.max_code_size == 2048


def test_load_from_json(tmp_path: Path):
    path = tmp_path / "config.json"
    path.write_text('{"sandbox": {"container_name": "yz-box"}}', encoding="utf-8")
    config = PlaygroundConfig.load_from_file(path)
    assert config.sandbox.container_name == "yz-box"


def test_unknown_keys_are_ignored():
    config = PlaygroundConfig.from_dict({"sandbox": {"cpus": 2}, "colour": "blue"})
    assert not hasattr(config.sandbox, "cpus")


def test_section_must_be_mapping():
    with pytest.raises(ConfigurationError):
        PlaygroundConfig.from_dict({"sandbox": ["docker"]})


def test_missing_file_raises(tmp_path: Path):
    with pytest.raises(ConfigurationError):
        PlaygroundConfig.load_from_file(tmp_path / "absent.yaml")


def test_malformed_yaml_raises(tmp_path: Path):
    path = tmp_path / "bad.yaml"
    path.write_text("sandbox: [unclosed\n", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        PlaygroundConfig.load_from_file(path)


def test_non_mapping_root_raises(tmp_path: Path):
    path = tmp_path / "list.yaml"
    path.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        PlaygroundConfig.load_from_file(path)


def test_save_and_reload_round_trip(tmp_path: Path):
    config = PlaygroundConfig()
    config.sandbox.memory_limit_mb = 512
    config.toolchain.compiler = "yzc-nightly"
    path = tmp_path / "nested" / "yz_playground.yaml"

    config.save_to_file(path)
    reloaded = PlaygroundConfig.load_from_file(path)
    assert reloaded.sandbox.memory_limit_mb == 512
    assert reloaded.toolchain.compiler == "yzc-nightly"


def test_env_overrides():
    config = PlaygroundConfig().apply_env_overrides(
        {
            "MAX_EXECUTION_TIME": "2500",
            "MAX_MEMORY": "64",
            "MAX_CODE_SIZE": "500",
            "SANDBOX_CONTAINER": "yz-shared",
            "SANDBOX_CONTROL_PLANE": "Docker-API",
            "YZ_COMPILER_PATH": "/opt/yz/yzc",
            "LOG_LEVEL": "DEBUG",
        }
    )
    assert config.sandbox.max_execution_time_seconds == 2.5
    assert config.sandbox.memory_limit_mb == 64
    assert config.max_code_size == 500
    assert config.sandbox.container_name == "yz-shared"
    assert config.sandbox.control_plane == "docker-api"
    assert config.toolchain.compiler == "/opt/yz/yzc"
    assert config.log_level == "DEBUG"


def test_env_override_ignores_non_integer():
    config = PlaygroundConfig().apply_env_overrides({"MAX_MEMORY": "lots"})
    assert config.sandbox.memory_limit_mb == 256


def test_env_override_validated():
    with pytest.raises(ConfigurationError):
        PlaygroundConfig().apply_env_overrides({"MAX_EXECUTION_TIME": "0"})


@pytest.mark.parametrize(
    "section, key, value",
    [
        ("sandbox", "control_plane", "podman"),
        ("sandbox", "memory_limit_mb", 0),
        ("sandbox", "max_execution_time_seconds", -1),
        ("sandbox", "control_timeout_seconds", 0),
        ("sandbox", "default_session_key", ""),
        ("sandbox", "image", ""),
        ("toolchain", "source_filename", "../main.yz"),
    ],
)
def test_invalid_values_rejected(section, key, value):
    with pytest.raises(ConfigurationError):
        PlaygroundConfig.from_dict({section: {key: value}})


def test_image_optional_when_attaching():
    config = PlaygroundConfig.from_dict({"sandbox": {"image": "", "container_name": "yz-box"}})
    assert config.sandbox.container_name == "yz-box"


def test_config_manager_defaults_without_file(tmp_path: Path):
    manager = ConfigManager(project_root=tmp_path)
    config = manager.load_config(environ={})
    assert config == PlaygroundConfig()
    assert manager.config is config


def test_config_manager_reads_file_then_env(tmp_path: Path):
    (tmp_path / ConfigManager.CONFIG_FILENAME).write_text(
        "sandbox:\n  memory_limit_mb: 100\n", encoding="utf-8"
    )
    manager = ConfigManager(project_root=tmp_path)
    config = manager.load_config(environ={"MAX_MEMORY": "50"})
    assert config.sandbox.memory_limit_mb == 50


def test_config_manager_save(tmp_path: Path):
    manager = ConfigManager(project_root=tmp_path)
    with pytest.raises(ConfigurationError):
        manager.save_config()

    manager.load_config(environ={})
    manager.save_config()
    assert (tmp_path / ConfigManager.CONFIG_FILENAME).exists()
