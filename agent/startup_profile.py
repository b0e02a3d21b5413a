from __future__ import annotations

import shutil
from dataclasses import dataclass
from pathlib import Path

from agent.config import AgentConfig


@dataclass
class StartupProfile:
    host: str
    port: int


def _require_valid_port(port: int, field_name: str = "port") -> None:
    if int(port) < 1 or int(port) > 65535:
        raise ValueError(f"{field_name} must be in range 1..65535")


def _require_non_empty_host(host: str) -> None:
    if not str(host or "").strip():
        raise ValueError("host is required")


def validate_agent_profile(profile: StartupProfile, config: AgentConfig) -> None:
    _require_non_empty_host(profile.host)
    _require_valid_port(profile.port)

    registry_parent = config.resolved_registry_path.parent
    if registry_parent.exists() and not registry_parent.is_dir():
        raise ValueError(f"registry directory {registry_parent} is not a directory")

    unit_dir = Path(config.unit_dir).expanduser()
    if unit_dir.exists() and not unit_dir.is_dir():
        raise ValueError(f"unit_dir {unit_dir} is not a directory")


def missing_tools(tools: tuple[str, ...] = ("git", "bash", "systemctl")) -> list[str]:
    return [tool for tool in tools if shutil.which(tool) is None]
