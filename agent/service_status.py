"""
systemd status parser

Turns the text printed by `systemctl status <unit>` into a ServiceStatus.
The scanner walks the block line by line with one anchored pattern per line:

    ● widget.service - Widget (Installed with SentryX)
         Loaded: loaded (/home/u/.config/systemd/user/widget.service; enabled; preset: enabled)
         Active: active (running) since Mon 2026-10-12 09:00:00 UTC; 2h ago
        Trigger: n/a
       Triggers: ● widget.path
           Docs: man:widget(8)
                 https://example.com/widget

Header, Loaded and Active are mandatory and must be the first three lines.
Anything else (targets, devices, journal excerpts) yields the all-absent
ServiceStatus, which listings drop.
"""
import re
from typing import List

from agent.models import ServiceStatus

HEADER_RE = re.compile(r"^[●○×*]\s(?P<name>\S+)\s-\s(?P<description>.+?)\s*$")
LOADED_RE = re.compile(
    r"^\s+Loaded:\s(?P<loaded_status>\S+)\s"
    r"\((?P<unit_file_path>[^;)]+)"
    r"(?:;\s(?P<enabled_state>[^;)\s]+))?"
    r"(?:;\s+(?:vendor\s)?preset:\s(?P<preset>[^;)\s]+))?"
    r"\)"
)
ACTIVE_RE = re.compile(r"^\s+Active:\s(?P<active_state>\S+)\s\((?P<active_substate>[^)]+)\)")
TRIGGER_RE = re.compile(r"^\s+Trigger:\s(?P<trigger>.+?)\s*$")
TRIGGERS_RE = re.compile(r"^\s+(?:Triggers|TriggeredBy):\s[●○×*]\s(?P<triggers>.+?)\s*$")
DOCS_RE = re.compile(r"^\s+Docs:\s(?P<docs>.+)$")
DOCS_CONTINUATION_RE = re.compile(r"^\s{7,}(?!\S+:\s)\S")


def parse_service_status(text: str) -> ServiceStatus:
    """
    Parse one status block.

    Returns the all-absent sentinel instead of raising when the block does
    not describe an application service.
    """
    lines = (text or "").splitlines()
    if len(lines) < 3:
        return ServiceStatus()

    header = HEADER_RE.match(lines[0])
    loaded = LOADED_RE.match(lines[1])
    active = ACTIVE_RE.match(lines[2])
    if not (header and loaded and active):
        return ServiceStatus()

    fields = {}
    fields.update(header.groupdict())
    fields.update({k: v.strip() if v else v for k, v in loaded.groupdict().items()})
    fields.update(active.groupdict())

    idx = 3
    if idx < len(lines):
        m = TRIGGER_RE.match(lines[idx])
        if m:
            fields["trigger"] = m.group("trigger")
            idx += 1

    if idx < len(lines):
        m = TRIGGERS_RE.match(lines[idx])
        if m:
            fields["triggers"] = m.group("triggers")
            idx += 1

    if idx < len(lines):
        m = DOCS_RE.match(lines[idx])
        if m:
            docs = [m.group("docs")]
            idx += 1
            while idx < len(lines) and DOCS_CONTINUATION_RE.match(lines[idx]):
                docs.append(lines[idx].strip())
                idx += 1
            fields["docs"] = "\n".join(docs).strip()

    return ServiceStatus(**fields)


def split_status_blocks(report: str) -> List[str]:
    """Split a multi-unit `systemctl status` report on blank lines"""
    blocks = []
    current: List[str] = []
    for line in (report or "").splitlines():
        if line.strip():
            current.append(line)
        elif current:
            blocks.append("\n".join(current))
            current = []
    if current:
        blocks.append("\n".join(current))
    return blocks


def parse_service_listing(report: str) -> List[ServiceStatus]:
    """Parse every block of a report, dropping non-application sentinels"""
    statuses = [parse_service_status(block) for block in split_status_blocks(report)]
    return [status for status in statuses if status.is_application]
