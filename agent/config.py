"""
Agent process configuration.

Loaded once at startup from a JSON file (./server.json by default) and passed
explicitly to the service factory. A missing file falls back to an insecure
default master key; the fallback is logged loudly and should never be used
outside a trusted test host.
"""
import json
import logging
import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_MASTER_KEY = "master_key"


def _default_apps_dir() -> str:
    return str(Path.home() / "sentryx" / "apps")


def _default_unit_dir() -> str:
    return str(Path.home() / ".config" / "systemd" / "user")


class AgentConfig(BaseModel):
    """Runtime settings shared by every control session"""
    master_key: str = DEFAULT_MASTER_KEY
    apps_dir: str = Field(default_factory=_default_apps_dir)
    registry_path: Optional[str] = None  # defaults to <apps_dir>/apps.json
    unit_dir: str = Field(default_factory=_default_unit_dir)
    systemd_user: bool = True  # pass --user to systemctl
    wanted_by: str = "default.target"

    telemetry_interval_seconds: float = 2.0
    sample_window_seconds: float = 0.2
    command_timeout_seconds: float = 900.0
    idle_timeout_seconds: float = 0.0  # 0 disables the inbound frame timeout

    @property
    def resolved_registry_path(self) -> Path:
        if self.registry_path:
            return Path(self.registry_path).expanduser()
        return Path(self.apps_dir).expanduser() / "apps.json"

    @property
    def is_insecure(self) -> bool:
        return self.master_key == DEFAULT_MASTER_KEY


def validate_config(config: AgentConfig) -> None:
    if not str(config.master_key or "").strip():
        raise ValueError("master_key must not be empty")
    if config.telemetry_interval_seconds <= 0:
        raise ValueError("telemetry_interval_seconds must be positive")
    if config.sample_window_seconds < 0:
        raise ValueError("sample_window_seconds must not be negative")
    if config.command_timeout_seconds <= 0:
        raise ValueError("command_timeout_seconds must be positive")
    if config.idle_timeout_seconds < 0:
        raise ValueError("idle_timeout_seconds must not be negative")
    if not str(config.apps_dir or "").strip():
        raise ValueError("apps_dir is required")


def _apply_env_overrides(data: dict) -> dict:
    master_key = os.getenv("SENTRYX_MASTER_KEY")
    if master_key:
        data["master_key"] = master_key
    apps_dir = os.getenv("SENTRYX_APPS_DIR")
    if apps_dir:
        data["apps_dir"] = apps_dir
    return data


def load_config(path: Optional[str] = None) -> AgentConfig:
    """
    Load agent configuration from disk.

    Args:
        path: JSON config file (default: $SENTRYX_CONFIG or ./server.json)

    Returns:
        Validated AgentConfig

    Raises:
        ValueError: if the file exists but is not a valid configuration
    """
    config_path = Path(path or os.getenv("SENTRYX_CONFIG", "./server.json"))

    data: dict = {}
    if config_path.exists():
        try:
            data = json.loads(config_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise ValueError(f"Config file {config_path} is not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise ValueError(f"Config file {config_path} must contain a JSON object")
        logger.info(f"Loaded configuration from {config_path}")
    else:
        logger.warning(f"Config file {config_path} not found, using defaults")

    try:
        config = AgentConfig.model_validate(_apply_env_overrides(data))
    except ValidationError as e:
        raise ValueError(f"Invalid configuration in {config_path}: {e}") from e

    validate_config(config)

    if config.is_insecure:
        logger.warning("Using the default master key; set master_key in the config file")

    return config
