"""
App Lifecycle Manager

Turns control-session commands into side effects: git checkouts, install
commands, systemd unit files and systemctl calls, with the registry updated
only once the side effects it describes exist.

The registry lock is never held across an external process call; a slow
clone on one session leaves registry reads and writes from other sessions
unaffected.
"""
import logging
import shutil
import threading
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Set

from agent.errors import (
    AgentError,
    AlreadyInstalledError,
    ExternalToolError,
    InvalidRepoError,
    StorageError,
)
from agent.models import (
    AppRecord,
    Command,
    EditCommand,
    GetCommand,
    InstallCommand,
    ListCommand,
    RestartCommand,
    ServicesCommand,
    SetEnabledCommand,
    StartCommand,
    StatusCommand,
    StopCommand,
    UninstallCommand,
)
from agent.registry import AppRegistry
from agent.service_status import parse_service_listing, parse_service_status
from agent.services.git_client import GitClient
from agent.services.service_manager import SystemdServiceManager, UnitDescriptor
from agent.services.shell_runner import ShellRunner

logger = logging.getLogger(__name__)


@dataclass
class StepResult:
    step: str
    ok: bool
    message: str = ""


@dataclass
class UninstallReport:
    app_id: str
    steps: List[StepResult] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.app_id, "steps": [asdict(s) for s in self.steps]}


class AppLifecycleManager:
    """
    Executes commands against the shared registry and the external collaborators.
    """

    def __init__(
        self,
        registry: AppRegistry,
        apps_dir: Path,
        git: GitClient,
        shell: ShellRunner,
        services: SystemdServiceManager,
        wanted_by: str = "default.target",
    ):
        """
        Args:
            registry: shared app registry (never copied per session)
            apps_dir: directory holding one checkout per app
            git: version-control collaborator
            shell: install-command collaborator
            services: systemd collaborator
            wanted_by: [Install] target of generated units
        """
        self.registry = registry
        self.apps_dir = Path(apps_dir)
        self.git = git
        self.shell = shell
        self.services = services
        self.wanted_by = wanted_by

        # ids, unit names and folders of installs still in flight
        self._reserved: Set[str] = set()
        self._reserve_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def execute(self, command: Command) -> Any:
        """Run one decoded command and return its response payload"""
        if isinstance(command, InstallCommand):
            return self.install(command.record)
        if isinstance(command, EditCommand):
            return self.edit(command.id, command.record)
        if isinstance(command, UninstallCommand):
            return self.uninstall(command.id)
        if isinstance(command, SetEnabledCommand):
            return self.set_enabled(command.id, command.enabled)
        if isinstance(command, StartCommand):
            return self.start(command.id)
        if isinstance(command, StopCommand):
            return self.stop(command.id)
        if isinstance(command, RestartCommand):
            return self.restart(command.id)
        if isinstance(command, ListCommand):
            return self.list_apps()
        if isinstance(command, GetCommand):
            return self.get_app(command.id)
        if isinstance(command, StatusCommand):
            return self.status(command.id)
        if isinstance(command, ServicesCommand):
            return self.list_services()
        raise TypeError(f"Unhandled command type: {type(command).__name__}")

    # ------------------------------------------------------------------
    # Install / Uninstall
    # ------------------------------------------------------------------

    def install(self, record: AppRecord) -> Dict[str, Any]:
        """
        Clone, build and register an app.

        Order matters: the registry entry is written last, so any failure
        before the unit file exists leaves no trace in the registry.
        """
        app_id = record.canonical_id
        if app_id is None:
            raise InvalidRepoError(record.repo)

        keys = self._reserve(record)
        try:
            return self._install(record)
        finally:
            with self._reserve_lock:
                self._reserved.difference_update(keys)

    def _reserve(self, record: AppRecord) -> Set[str]:
        """Claim the id, unit name and folder of an install before any side effect"""
        keys = {f"id:{record.canonical_id}", f"unit:{record.system_id}", f"dir:{record.folder_name}"}
        with self._reserve_lock:
            if self.registry.contains(record.canonical_id):
                raise AlreadyInstalledError(record.canonical_id)
            self._check_collisions(record)
            if keys & self._reserved:
                raise AlreadyInstalledError(record.canonical_id, "another install of it is in progress")
            self._reserved.update(keys)
        return keys

    def _install(self, record: AppRecord) -> Dict[str, Any]:
        app_id = record.canonical_id
        logger.info(f"Installing app: {app_id}")

        try:
            self.apps_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to create apps directory {self.apps_dir}: {e}") from e

        checkout = self.apps_dir / record.folder_name
        self.git.clone(record.repo, record.branch, checkout)

        warnings: List[str] = []
        try:
            self._run_install_command(record, checkout, warnings)

            descriptor = UnitDescriptor(
                description=f"{record.folder_name} (Installed with SentryX)",
                working_directory=str(checkout),
                exec_start=record.run_command,
                wanted_by=self.wanted_by,
            )
            self.services.write_unit(record.system_id, descriptor)
        except AgentError:
            self._discard_checkout(checkout)
            raise

        self._best_effort(warnings, "daemon-reload", self.services.daemon_reload)
        if record.enabled:
            self._best_effort(warnings, "enable", lambda: self.services.enable(record.system_id))

        try:
            self.registry.upsert(record)
        except AgentError:
            self._rollback_install(record, checkout)
            raise
        logger.info(f"Installed app: {app_id} (service {record.system_id})")

        return {"app": record.describe(), "warnings": warnings}

    def _check_collisions(self, record: AppRecord) -> None:
        """Distinct ids can still map to the same unit name or checkout folder"""
        for other in self.registry.list():
            if other.system_id == record.system_id:
                raise AlreadyInstalledError(
                    record.canonical_id, f"service {record.system_id} belongs to {other.canonical_id}"
                )
            if other.folder_name == record.folder_name:
                raise AlreadyInstalledError(
                    record.canonical_id, f"folder {record.folder_name} belongs to {other.canonical_id}"
                )

    def _rollback_install(self, record: AppRecord, checkout: Path) -> None:
        logger.warning(f"Rolling back install of {record.canonical_id}")
        rollback: List[str] = []
        if record.enabled:
            self._best_effort(rollback, "disable", lambda: self.services.disable(record.system_id))
        self._best_effort(rollback, "remove unit", lambda: self.services.remove_unit(record.system_id))
        self._best_effort(rollback, "daemon-reload", self.services.daemon_reload)
        self._discard_checkout(checkout)

    def _run_install_command(self, record: AppRecord, checkout: Path, warnings: List[str]) -> None:
        if not record.install_command.strip():
            return

        logger.info(f"Running install command in {checkout}")
        try:
            result = self.shell.run(record.install_command, cwd=checkout)
        except ExternalToolError as e:
            message = f"Install command failed: {e.message}"
        else:
            if result.ok:
                return
            message = f"Install command exited with {result.returncode}"
        logger.warning(f"{record.canonical_id}: {message}")
        warnings.append(message)

    def _discard_checkout(self, checkout: Path) -> None:
        try:
            shutil.rmtree(checkout)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Failed to clean up checkout {checkout}: {e}")

    def uninstall(self, app_id: str) -> Dict[str, Any]:
        """
        Remove an app: every step is attempted even if an earlier one failed.
        Only the final registry removal decides the overall outcome.
        """
        record = self.registry.get(app_id)
        sid = record.system_id
        report = UninstallReport(app_id=app_id)

        logger.info(f"Uninstalling app: {app_id}")
        self._step(report, "stop", lambda: self.services.stop(sid))
        self._step(report, "disable", lambda: self.services.disable(sid))
        self._step(report, "remove_checkout", lambda: self._remove_checkout(record))
        self._step(report, "remove_unit", lambda: self.services.remove_unit(sid))
        self._step(report, "daemon_reload", self.services.daemon_reload)

        try:
            self.registry.remove(app_id)
        except AgentError as e:
            report.steps.append(StepResult("remove_registry_entry", False, e.message))
            e.details = report.to_dict()
            raise
        report.steps.append(StepResult("remove_registry_entry", True))

        logger.info(f"Removed app: {app_id}")
        return report.to_dict()

    def _remove_checkout(self, record: AppRecord) -> None:
        checkout = self.apps_dir / record.folder_name
        if not checkout.exists():
            logger.info(f"Checkout {checkout} already absent")
            return
        shutil.rmtree(checkout)

    def _step(self, report: UninstallReport, name: str, action: Callable[[], None]) -> None:
        try:
            action()
        except (AgentError, OSError) as e:
            message = e.message if isinstance(e, AgentError) else str(e)
            logger.warning(f"Uninstall {report.app_id}: step {name} failed: {message}")
            report.steps.append(StepResult(name, False, message))
        else:
            report.steps.append(StepResult(name, True))

    def _best_effort(self, warnings: List[str], name: str, action: Callable[[], None]) -> None:
        try:
            action()
        except AgentError as e:
            logger.warning(f"{name} failed: {e.message}")
            warnings.append(f"{name} failed: {e.message}")

    # ------------------------------------------------------------------
    # Edit / enable / start / stop / restart
    # ------------------------------------------------------------------

    def edit(self, app_id: str, record: AppRecord) -> Dict[str, Any]:
        """Replace stored fields; takes effect on the next start/restart"""
        updated = self.registry.replace(app_id, record)
        return updated.describe()

    def set_enabled(self, app_id: str, enabled: bool) -> Dict[str, Any]:
        record = self.registry.get(app_id)
        if enabled:
            self.services.enable(record.system_id)
        else:
            self.services.disable(record.system_id)
        updated = self.registry.set_enabled(app_id, enabled)
        return updated.describe()

    def start(self, app_id: str) -> Dict[str, Any]:
        record = self.registry.get(app_id)
        self.services.start(record.system_id)
        return {"id": app_id, "system_id": record.system_id}

    def stop(self, app_id: str) -> Dict[str, Any]:
        record = self.registry.get(app_id)
        self.services.stop(record.system_id)
        return {"id": app_id, "system_id": record.system_id}

    def restart(self, app_id: str) -> Dict[str, Any]:
        record = self.registry.get(app_id)
        self.services.restart(record.system_id)
        return {"id": app_id, "system_id": record.system_id}

    # ------------------------------------------------------------------
    # Read-only
    # ------------------------------------------------------------------

    def list_apps(self) -> List[Dict[str, Any]]:
        return [record.describe() for record in self.registry.list()]

    def get_app(self, app_id: str) -> Dict[str, Any]:
        return self.registry.get(app_id).describe()

    def status(self, app_id: str) -> Optional[Dict[str, Any]]:
        """Parsed unit status, or None when systemd reports no application service"""
        record = self.registry.get(app_id)
        status = parse_service_status(self.services.status_text(record.system_id))
        return status.model_dump() if status.is_application else None

    def list_services(self) -> List[Dict[str, Any]]:
        return [status.model_dump() for status in parse_service_listing(self.services.status_text())]
