"""Tests for agent/config.py and agent/startup_profile.py."""

import json

import pytest

from agent.config import DEFAULT_MASTER_KEY, AgentConfig, load_config, validate_config
from agent.startup_profile import StartupProfile, validate_agent_profile


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("SENTRYX_CONFIG", "SENTRYX_MASTER_KEY", "SENTRYX_APPS_DIR"):
        monkeypatch.delenv(name, raising=False)


def test_missing_file_falls_back_to_insecure_default(tmp_path, caplog):
    config = load_config(str(tmp_path / "server.json"))
    assert config.master_key == DEFAULT_MASTER_KEY
    assert config.is_insecure
    assert "default master key" in caplog.text


def test_load_from_file(tmp_path):
    path = tmp_path / "server.json"
    path.write_text(json.dumps({
        "master_key": "s3cret",
        "apps_dir": str(tmp_path / "apps"),
        "telemetry_interval_seconds": 5,
    }), encoding="utf-8")

    config = load_config(str(path))

    assert config.master_key == "s3cret"
    assert not config.is_insecure
    assert config.telemetry_interval_seconds == 5
    assert config.resolved_registry_path == tmp_path / "apps" / "apps.json"


def test_config_path_from_environment(tmp_path, monkeypatch):
    path = tmp_path / "agent.json"
    path.write_text(json.dumps({"master_key": "from-env-file"}), encoding="utf-8")
    monkeypatch.setenv("SENTRYX_CONFIG", str(path))
    assert load_config().master_key == "from-env-file"


def test_environment_overrides_file(tmp_path, monkeypatch):
    path = tmp_path / "server.json"
    path.write_text(json.dumps({"master_key": "file-key"}), encoding="utf-8")
    monkeypatch.setenv("SENTRYX_MASTER_KEY", "env-key")
    monkeypatch.setenv("SENTRYX_APPS_DIR", str(tmp_path / "elsewhere"))

    config = load_config(str(path))

    assert config.master_key == "env-key"
    assert config.apps_dir == str(tmp_path / "elsewhere")


def test_explicit_registry_path(tmp_path):
    config = AgentConfig(registry_path=str(tmp_path / "registry.json"))
    assert config.resolved_registry_path == tmp_path / "registry.json"


@pytest.mark.parametrize("content", ["{not json", "[1, 2]", '{"telemetry_interval_seconds": "often"}'])
def test_invalid_file_raises_value_error(tmp_path, content):
    path = tmp_path / "server.json"
    path.write_text(content, encoding="utf-8")
    with pytest.raises(ValueError):
        load_config(str(path))


@pytest.mark.parametrize("overrides", [
    {"master_key": "  "},
    {"telemetry_interval_seconds": 0},
    {"sample_window_seconds": -1},
    {"command_timeout_seconds": 0},
    {"idle_timeout_seconds": -5},
])
def test_validate_config_rejects_bad_values(overrides):
    with pytest.raises(ValueError):
        validate_config(AgentConfig(**overrides))


def test_startup_profile_validation():
    config = AgentConfig(master_key="k")
    validate_agent_profile(StartupProfile(host="0.0.0.0", port=5273), config)

    with pytest.raises(ValueError):
        validate_agent_profile(StartupProfile(host="", port=5273), config)
    with pytest.raises(ValueError):
        validate_agent_profile(StartupProfile(host="127.0.0.1", port=0), config)
