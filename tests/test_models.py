"""Tests for agent/models.py: derived ids and command frame decoding."""

import pytest

from agent.errors import ParseError
from agent.models import (
    AppRecord,
    EditCommand,
    InstallCommand,
    ListCommand,
    ServiceStatus,
    SetEnabledCommand,
    StartCommand,
    canonical_id,
    clamp_percent,
    decode_command,
    system_id,
)


# ---------------------------------------------------------------------------
# canonical_id / system_id / folder_name
# ---------------------------------------------------------------------------
@pytest.mark.parametrize("repo", [
    "https://github.com/owner/repo",
    "https://github.com/owner/repo.git",
    "https://github.com/owner/repo/",
    "http://git.example.org:8080/owner/repo.git",
    "ssh://git@example.org/owner/repo.git",
    "git@github.com:owner/repo.git",
    "git@github.com:owner/repo",
    "deploy@10.0.0.5:owner/repo.git",
])
def test_canonical_id_supported_forms(repo):
    assert canonical_id(repo) == "owner/repo"


@pytest.mark.parametrize("repo", [
    "",
    "owner/repo",
    "github.com/owner/repo",
    "/srv/git/owner/repo.git",
    "https://github.com/",
    "https://github.com",
    "github.com:owner/repo",
    "https://github.com/owner/../repo",
    "https://github.com/owner/my repo",
    "git@github.com:",
])
def test_canonical_id_unsupported_forms(repo):
    assert canonical_id(repo) is None


def test_canonical_id_nested_groups():
    assert canonical_id("https://gitlab.com/group/sub/project.git") == "group/sub/project"


def test_system_id_replaces_every_separator():
    assert system_id("acme/widget") == "acme-widget"
    assert system_id("group/sub/project") == "group-sub-project"


def test_record_derived_fields():
    record = AppRecord(repo="https://example.com/acme/widget.git", branch="main", run_command="./widget")
    assert record.canonical_id == "acme/widget"
    assert record.system_id == "acme-widget"
    assert record.folder_name == "widget"
    assert record.enabled is True
    assert record.install_command == ""


def test_record_with_unparseable_repo_has_no_ids():
    record = AppRecord(repo="not a url", branch="main", run_command="x")
    assert record.canonical_id is None
    assert record.system_id is None
    assert record.folder_name is None


def test_describe_includes_derived_ids():
    record = AppRecord(repo="git@github.com:acme/widget.git", branch="dev", run_command="./widget")
    described = record.describe()
    assert described["id"] == "acme/widget"
    assert described["system_id"] == "acme-widget"
    assert described["folder_name"] == "widget"
    assert described["branch"] == "dev"


def test_service_status_sentinel():
    assert ServiceStatus().is_application is False
    assert ServiceStatus(name="widget.service").is_application is True


def test_clamp_percent():
    assert clamp_percent(-3) == 0
    assert clamp_percent(42.9) == 42
    assert clamp_percent(250) == 100
    assert clamp_percent(float("nan")) == 0


# ---------------------------------------------------------------------------
# decode_command
# ---------------------------------------------------------------------------
RECORD = {
    "repo": "https://example.com/acme/widget.git",
    "branch": "main",
    "install_command": "./build.sh",
    "run_command": "./widget",
}


def test_decode_install_bare_record():
    command = decode_command('{"Install": %s}' % _json(RECORD))
    assert isinstance(command, InstallCommand)
    assert command.record.canonical_id == "acme/widget"


def test_decode_install_wrapped_record():
    command = decode_command(_json({"Install": {"record": RECORD}}))
    assert isinstance(command, InstallCommand)
    assert command.record.run_command == "./widget"


def test_decode_edit_object_and_tuple_forms():
    as_object = decode_command(_json({"Edit": {"id": "acme/widget", "record": RECORD}}))
    as_tuple = decode_command(_json({"Edit": ["acme/widget", RECORD]}))
    assert isinstance(as_object, EditCommand)
    assert as_object == as_tuple


def test_decode_set_enabled_forms():
    as_object = decode_command('{"SetEnabled": {"id": "osui-rs/osui", "enabled": false}}')
    as_tuple = decode_command('{"SetEnabled": ["osui-rs/osui", false]}')
    assert isinstance(as_object, SetEnabledCommand)
    assert as_object.enabled is False
    assert as_object == as_tuple


def test_decode_id_shorthand():
    command = decode_command('{"Start": "acme/widget"}')
    assert isinstance(command, StartCommand)
    assert command.id == "acme/widget"


def test_decode_argumentless_forms():
    assert isinstance(decode_command('"List"'), ListCommand)
    assert isinstance(decode_command('{"List": {}}'), ListCommand)
    assert isinstance(decode_command('{"List": null}'), ListCommand)


@pytest.mark.parametrize("frame", [
    "not json",
    "[]",
    "42",
    '{"Start": "a/b", "Stop": "a/b"}',
    '{"Launch": "a/b"}',
    '{"Start": {}}',
    '{"Start": 0}',
    '{"SetEnabled": ["a/b"]}',
    '{"Install": {"repo": "https://example.com/a/b"}}',
    '{"Start": {"id": "a/b", "force": true}}',
    '{"List": "a/b"}',
])
def test_decode_rejects_malformed_frames(frame):
    with pytest.raises(ParseError):
        decode_command(frame)


@pytest.mark.parametrize("frame", [
    '{"Start": ' + "1" * 5000 + "}",
    '{"Start": ' + "[" * 100000 + "]" * 100000 + "}",
])
def test_decode_rejects_pathological_json(frame):
    with pytest.raises(ParseError):
        decode_command(frame)


def test_decode_rejects_index_addressing_with_explanation():
    with pytest.raises(ParseError, match="not by index"):
        decode_command('{"Uninstall": 3}')


def _json(value):
    import json
    return json.dumps(value)
