"""Shared pytest fixtures for the SentryX agent test suite.

External tools never run here: FakeRunner stands in for git/bash/systemctl
and records every invocation, FakeSampler replaces psutil telemetry.
"""

import sys
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import pytest

# Ensure project root is on sys.path
BASE_DIR = Path(__file__).resolve().parent.parent
if str(BASE_DIR) not in sys.path:
    sys.path.insert(0, str(BASE_DIR))

from agent.config import AgentConfig
from agent.lifecycle import AppLifecycleManager
from agent.models import AppRecord, TelemetrySample
from agent.registry import AppRegistry
from agent.services.git_client import GitClient
from agent.services.process import ProcessResult
from agent.services.service_manager import SystemdServiceManager
from agent.services.shell_runner import ShellRunner

MASTER_KEY = "test-master-key"


class FakeRunner:
    """Records argv lists; exit codes scripted by argv prefix."""

    def __init__(self):
        self.calls: List[Tuple[List[str], Optional[Path]]] = []
        self.failures: Dict[Tuple[str, ...], int] = {}
        self.status_output = ""

    def fail(self, *prefix: str, returncode: int = 1) -> None:
        self.failures[tuple(prefix)] = returncode

    def commands(self) -> List[List[str]]:
        return [argv for argv, _ in self.calls]

    def run(self, args: Sequence[str], cwd: Optional[Path] = None, timeout: Optional[float] = None) -> ProcessResult:
        argv = [str(a) for a in args]
        self.calls.append((argv, cwd))

        returncode = 0
        for prefix, code in self.failures.items():
            if tuple(argv[: len(prefix)]) == prefix:
                returncode = code

        if returncode == 0 and argv[:2] == ["git", "clone"]:
            Path(argv[-1]).mkdir(parents=True)

        stdout = self.status_output if "status" in argv else ""
        return ProcessResult(args=argv, returncode=returncode, stdout=stdout, stderr="")


class FakeSampler:
    def __init__(self):
        self.calls = 0

    def sample(self) -> TelemetrySample:
        self.calls += 1
        return TelemetrySample(memory=42, cpu=7, disk=55, network=1024)


def make_record(repo: str = "https://example.com/acme/widget.git", **overrides) -> AppRecord:
    fields = {
        "repo": repo,
        "branch": "main",
        "install_command": "./build.sh",
        "run_command": "./widget",
    }
    fields.update(overrides)
    return AppRecord(**fields)


@pytest.fixture
def config(tmp_path):
    return AgentConfig(
        master_key=MASTER_KEY,
        apps_dir=str(tmp_path / "apps"),
        unit_dir=str(tmp_path / "units"),
        telemetry_interval_seconds=3600,
        sample_window_seconds=0,
    )


@pytest.fixture
def registry(config):
    return AppRegistry.load(config.resolved_registry_path)


@pytest.fixture
def runner():
    return FakeRunner()


@pytest.fixture
def lifecycle(config, registry, runner):
    return AppLifecycleManager(
        registry=registry,
        apps_dir=Path(config.apps_dir),
        git=GitClient(runner),
        shell=ShellRunner(runner),
        services=SystemdServiceManager(runner, unit_dir=Path(config.unit_dir)),
        wanted_by=config.wanted_by,
    )


@pytest.fixture
def sampler():
    return FakeSampler()


@pytest.fixture
def client(config, lifecycle, sampler):
    from fastapi.testclient import TestClient

    from agent.service import create_app

    app = create_app(config=config, lifecycle=lifecycle, sampler=sampler)
    with TestClient(app) as test_client:
        yield test_client
