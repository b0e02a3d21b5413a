"""
Agent data models.

AppRecord is what the registry persists; everything else here travels over
the control session: the closed Command variant decoded from inbound frames,
the response frame, the telemetry frame and the parsed systemd ServiceStatus.
"""
import json
import re
from typing import Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, ValidationError

from agent.errors import ParseError

# ============================================================================
# APP RECORD + DERIVED IDS
# ============================================================================

_SEGMENT = r"[A-Za-z0-9._-]+"
_PATH = rf"(?P<path>{_SEGMENT}(?:/{_SEGMENT})*)"

# scheme://host/owner/repo (host may carry user@ and :port)
_URL_FORM = re.compile(rf"^[A-Za-z][A-Za-z0-9+.-]*://[^/\s]+/{_PATH}/?$")
# user@host:owner/repo
_SCP_FORM = re.compile(rf"^[^@/\s:]+@[^:/\s]+:{_PATH}/?$")


def canonical_id(repo: str) -> Optional[str]:
    """
    Derive the registry key ("owner/repo") from a remote URL.

    Returns None when the URL is not in a recognized form.
    """
    url = str(repo or "").strip()
    match = _URL_FORM.match(url) or _SCP_FORM.match(url)
    if not match:
        return None

    path = match.group("path")
    if path.endswith(".git"):
        path = path[: -len(".git")]

    segments = path.split("/")
    if any(seg in ("", ".", "..") for seg in segments):
        return None
    return path


def system_id(app_id: str) -> str:
    """Service-unit name for a canonical id ("owner/repo" -> "owner-repo")"""
    return app_id.replace("/", "-")


class AppRecord(BaseModel):
    """One managed application"""
    model_config = ConfigDict(extra="ignore")

    repo: str
    branch: str
    install_command: str = ""
    run_command: str
    enabled: bool = True  # absent in older registry files means enabled

    @property
    def canonical_id(self) -> Optional[str]:
        return canonical_id(self.repo)

    @property
    def system_id(self) -> Optional[str]:
        app_id = self.canonical_id
        return system_id(app_id) if app_id else None

    @property
    def folder_name(self) -> Optional[str]:
        app_id = self.canonical_id
        return app_id.rsplit("/", 1)[-1] if app_id else None

    def describe(self) -> Dict[str, Any]:
        """Record plus derived ids, as returned by listings"""
        data = self.model_dump()
        data["id"] = self.canonical_id
        data["system_id"] = self.system_id
        data["folder_name"] = self.folder_name
        return data


# ============================================================================
# SERVICE STATUS
# ============================================================================

class ServiceStatus(BaseModel):
    """Parsed view of one `systemctl status` block"""
    name: Optional[str] = None
    description: Optional[str] = None
    loaded_status: Optional[str] = None
    unit_file_path: Optional[str] = None
    enabled_state: Optional[str] = None
    preset: Optional[str] = None
    active_state: Optional[str] = None
    active_substate: Optional[str] = None
    trigger: Optional[str] = None
    triggers: Optional[str] = None
    docs: Optional[str] = None

    @property
    def is_application(self) -> bool:
        """False for the all-absent sentinel (targets, devices, log blocks)"""
        return any(value is not None for value in self.model_dump().values())


# ============================================================================
# TELEMETRY
# ============================================================================

class TelemetrySample(BaseModel):
    """Telemetry frame pushed to the operator every interval"""
    memory: int  # percent, 0-100
    cpu: int     # percent, 0-100
    disk: int    # percent, 0-100
    network: int  # bytes sent + received during the sample window


def clamp_percent(value: float) -> int:
    if value != value:  # NaN
        return 0
    return int(max(0.0, min(100.0, value)))


# ============================================================================
# COMMANDS (closed tagged variant)
# ============================================================================

class _CommandBase(BaseModel):
    model_config = ConfigDict(extra="forbid")


class InstallCommand(_CommandBase):
    kind: Literal["Install"] = "Install"
    record: AppRecord


class EditCommand(_CommandBase):
    kind: Literal["Edit"] = "Edit"
    id: str
    record: AppRecord


class UninstallCommand(_CommandBase):
    kind: Literal["Uninstall"] = "Uninstall"
    id: str


class SetEnabledCommand(_CommandBase):
    kind: Literal["SetEnabled"] = "SetEnabled"
    id: str
    enabled: bool


class StartCommand(_CommandBase):
    kind: Literal["Start"] = "Start"
    id: str


class StopCommand(_CommandBase):
    kind: Literal["Stop"] = "Stop"
    id: str


class RestartCommand(_CommandBase):
    kind: Literal["Restart"] = "Restart"
    id: str


class ListCommand(_CommandBase):
    kind: Literal["List"] = "List"


class GetCommand(_CommandBase):
    kind: Literal["Get"] = "Get"
    id: str


class StatusCommand(_CommandBase):
    kind: Literal["Status"] = "Status"
    id: str


class ServicesCommand(_CommandBase):
    kind: Literal["Services"] = "Services"


Command = Union[
    InstallCommand,
    EditCommand,
    UninstallCommand,
    SetEnabledCommand,
    StartCommand,
    StopCommand,
    RestartCommand,
    ListCommand,
    GetCommand,
    StatusCommand,
    ServicesCommand,
]

COMMAND_TYPES = {
    "Install": InstallCommand,
    "Edit": EditCommand,
    "Uninstall": UninstallCommand,
    "SetEnabled": SetEnabledCommand,
    "Start": StartCommand,
    "Stop": StopCommand,
    "Restart": RestartCommand,
    "List": ListCommand,
    "Get": GetCommand,
    "Status": StatusCommand,
    "Services": ServicesCommand,
}

# Positional field order for the tuple/bare forms, e.g. {"SetEnabled": ["a/b", true]}
_FIELD_ORDER = {
    "Install": ("record",),
    "Edit": ("id", "record"),
    "Uninstall": ("id",),
    "SetEnabled": ("id", "enabled"),
    "Start": ("id",),
    "Stop": ("id",),
    "Restart": ("id",),
    "List": (),
    "Get": ("id",),
    "Status": ("id",),
    "Services": (),
}


def _command_fields(tag: str, body: Any) -> Dict[str, Any]:
    order = _FIELD_ORDER[tag]

    if body is None or body == {} or body == []:
        fields: Dict[str, Any] = {}
    elif tag == "Install" and isinstance(body, dict):
        fields = body if set(body) == {"record"} else {"record": body}
    elif isinstance(body, dict):
        fields = body
    elif isinstance(body, list):
        if len(body) != len(order):
            raise ParseError(f"{tag} expects {len(order)} positional value(s), got {len(body)}")
        fields = dict(zip(order, body))
    elif order:
        fields = {order[0]: body}
    else:
        raise ParseError(f"{tag} takes no arguments")

    app_id = fields.get("id")
    if isinstance(app_id, (int, float)) and not isinstance(app_id, bool):
        raise ParseError("Apps are addressed by canonical id (owner/repo), not by index")

    return fields


def decode_command(frame: str) -> Command:
    """
    Decode one inbound text frame into a Command.

    Accepted shapes: {"Tag": {...}}, {"Tag": [positional, ...]},
    {"Tag": "app-id"} and a bare "Tag" string for argument-less commands.

    Raises:
        ParseError: malformed JSON, unknown tag or invalid fields
    """
    try:
        payload = json.loads(frame)
    except (TypeError, ValueError) as e:
        # ValueError also covers integer literals past the int-conversion limit
        raise ParseError(f"Command frame is not valid JSON: {e}") from e
    except RecursionError as e:
        raise ParseError("Command frame is nested too deeply") from e

    if isinstance(payload, str):
        tag, body = payload, None
    elif isinstance(payload, dict) and len(payload) == 1:
        tag, body = next(iter(payload.items()))
    else:
        raise ParseError("Command frame must be an object with exactly one command tag")

    model = COMMAND_TYPES.get(tag)
    if model is None:
        raise ParseError(f"Unknown command: {tag}")

    fields = _command_fields(tag, body)
    try:
        return model.model_validate(fields)
    except ValidationError as e:
        raise ParseError(f"Invalid {tag} command: {e.errors(include_url=False)}") from e


# ============================================================================
# RESPONSE FRAME
# ============================================================================

class CommandResponse(BaseModel):
    """Outcome of one command, sent back on the control session"""
    type: Literal["response"] = "response"
    command: Optional[str] = None
    ok: bool
    data: Any = None
    error: Optional[str] = None
    message: Optional[str] = None
