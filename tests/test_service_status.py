"""Tests for agent/service_status.py: systemctl status parsing."""

from agent.service_status import parse_service_listing, parse_service_status, split_status_blocks

FULL_BLOCK = """\
● acme-widget.service - widget (Installed with SentryX)
     Loaded: loaded (/home/server/.config/systemd/user/acme-widget.service; enabled; preset: enabled)
     Active: active (running) since Mon 2026-10-12 09:00:00 UTC; 2h 3min ago
       Docs: man:widget(8)
             https://example.com/widget/docs
   Main PID: 4242 (widget)
"""

TIMER_BLOCK = """\
● backup.timer - Nightly backup
     Loaded: loaded (/etc/systemd/system/backup.timer; enabled; vendor preset: disabled)
     Active: active (waiting) since Mon 2026-10-12 09:00:00 UTC; 1h ago
    Trigger: Tue 2026-10-13 03:00:00 UTC; 16h left
   Triggers: ● backup.service
"""

TARGET_BLOCK = """\
● default.target - Main User Target
     Loaded: loaded (/usr/lib/systemd/user/default.target; static)
     Active: active since Mon 2026-10-12 09:00:00 UTC; 2h ago
"""

DEVICE_BLOCK = """\
  sys-devices-virtual-net-lo.device
     Loaded: loaded
     Active: active (plugged)
"""


def test_full_block_populates_every_field():
    status = parse_service_status(FULL_BLOCK)
    assert status.name == "acme-widget.service"
    assert status.description == "widget (Installed with SentryX)"
    assert status.loaded_status == "loaded"
    assert status.unit_file_path == "/home/server/.config/systemd/user/acme-widget.service"
    assert status.enabled_state == "enabled"
    assert status.preset == "enabled"
    assert status.active_state == "active"
    assert status.active_substate == "running"
    assert status.docs == "man:widget(8)\nhttps://example.com/widget/docs"
    assert status.trigger is None
    assert status.triggers is None
    assert status.is_application


def test_trigger_lines_and_vendor_preset():
    status = parse_service_status(TIMER_BLOCK)
    assert status.name == "backup.timer"
    assert status.preset == "disabled"
    assert status.active_substate == "waiting"
    assert status.trigger == "Tue 2026-10-13 03:00:00 UTC; 16h left"
    assert status.triggers == "backup.service"
    assert status.docs is None


def test_loaded_line_without_enabled_state():
    block = (
        "○ oneshot.service - One shot\n"
        "     Loaded: loaded (/etc/systemd/system/oneshot.service)\n"
        "     Active: inactive (dead)\n"
    )
    status = parse_service_status(block)
    assert status.unit_file_path == "/etc/systemd/system/oneshot.service"
    assert status.enabled_state is None
    assert status.preset is None
    assert status.active_state == "inactive"
    assert status.active_substate == "dead"


def test_target_and_device_blocks_yield_sentinel():
    assert not parse_service_status(TARGET_BLOCK).is_application
    assert not parse_service_status(DEVICE_BLOCK).is_application


def test_garbage_yields_sentinel_not_error():
    assert not parse_service_status("").is_application
    assert not parse_service_status("Unit widget.service could not be found.").is_application
    assert not parse_service_status(None).is_application


def test_header_must_come_first():
    assert not parse_service_status("Warning: journal rotated\n" + FULL_BLOCK).is_application


def test_docs_stop_at_non_continuation_line():
    block = FULL_BLOCK.replace("   Main PID: 4242 (widget)\n", "        CPU: 12ms\n")
    assert parse_service_status(block).docs == "man:widget(8)\nhttps://example.com/widget/docs"


def test_split_status_blocks():
    report = FULL_BLOCK + "\n" + TARGET_BLOCK + "\n\n" + TIMER_BLOCK
    blocks = split_status_blocks(report)
    assert len(blocks) == 3
    assert blocks[1].startswith("● default.target")


def test_listing_excludes_sentinels():
    report = "\n".join([TARGET_BLOCK, FULL_BLOCK, DEVICE_BLOCK, TIMER_BLOCK])
    names = [status.name for status in parse_service_listing(report)]
    assert names == ["acme-widget.service", "backup.timer"]
