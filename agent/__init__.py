"""
SentryX Agent: The Control Plane

The agent is the single source of truth for the apps installed on this host.
Responsibilities:
- App registry persistence (apps.json)
- App lifecycle: clone, build, service-unit generation, start/stop/restart
- systemd status parsing for service listings
- Authenticated WebSocket sessions carrying commands and host telemetry
"""
import os


def _int_env(name: str, default: int) -> int:
    raw = str(os.getenv(name, str(default))).strip()
    try:
        return int(raw)
    except Exception:
        return default


AGENT_PORT = _int_env("SENTRYX_PORT", 5273)
AGENT_BIND_HOST = str(os.getenv("SENTRYX_BIND_HOST", "127.0.0.1")).strip()
CONFIG_PATH = str(os.getenv("SENTRYX_CONFIG", "./server.json")).strip()
