"""
systemd collaborator

Writes one user unit per app (<unit_dir>/<system_id>.service) and drives it
with `systemctl [--user] <verb> <unit>`.
"""
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from agent.errors import ExternalToolError
from agent.services.process import ProcessResult, ProcessRunner

logger = logging.getLogger(__name__)


@dataclass
class UnitDescriptor:
    """Everything the generated .service file contains"""
    description: str
    working_directory: str
    exec_start: str
    restart: str = "always"
    restart_sec: int = 5
    log_target: str = "journal"
    wanted_by: str = "default.target"

    def render(self) -> str:
        return (
            "[Unit]\n"
            f"Description={self.description}\n"
            "After=network.target\n"
            "\n"
            "[Service]\n"
            f"WorkingDirectory={self.working_directory}\n"
            f"ExecStart={self.exec_start}\n"
            f"Restart={self.restart}\n"
            f"RestartSec={self.restart_sec}\n"
            f"StandardOutput={self.log_target}\n"
            f"StandardError={self.log_target}\n"
            "\n"
            "[Install]\n"
            f"WantedBy={self.wanted_by}\n"
        )


class SystemdServiceManager:
    """
    Unit-file and systemctl adapter.
    """

    def __init__(self, runner: ProcessRunner, unit_dir: Path, user: bool = True, executable: str = "systemctl"):
        """
        Args:
            runner: process runner used for systemctl calls
            unit_dir: directory holding the generated unit files
            user: manage the per-user instance (systemctl --user)
            executable: systemctl binary
        """
        self.runner = runner
        self.unit_dir = Path(unit_dir)
        self.user = user
        self.executable = executable

    @staticmethod
    def unit_name(system_id: str) -> str:
        return f"{system_id}.service"

    def unit_path(self, system_id: str) -> Path:
        return self.unit_dir / self.unit_name(system_id)

    # ------------------------------------------------------------------
    # Unit files
    # ------------------------------------------------------------------

    def write_unit(self, system_id: str, descriptor: UnitDescriptor) -> Path:
        path = self.unit_path(system_id)
        logger.info(f"Creating service file: {path}")
        try:
            self.unit_dir.mkdir(parents=True, exist_ok=True)
            tmp = path.with_name(f".{path.name}.tmp")
            tmp.write_text(descriptor.render(), encoding="utf-8")
            os.replace(tmp, path)
        except OSError as e:
            raise ExternalToolError("systemd", f"failed to write unit file {path}: {e}") from e
        return path

    def remove_unit(self, system_id: str) -> None:
        path = self.unit_path(system_id)
        try:
            path.unlink()
        except FileNotFoundError:
            logger.info(f"Service file {path} already absent")
        except OSError as e:
            raise ExternalToolError("systemd", f"failed to remove unit file {path}: {e}") from e

    # ------------------------------------------------------------------
    # systemctl
    # ------------------------------------------------------------------

    def _systemctl(self, *args: str) -> ProcessResult:
        argv = [self.executable]
        if self.user:
            argv.append("--user")
        argv.extend(args)
        return self.runner.run(argv)

    def _checked(self, verb: str, system_id: Optional[str] = None) -> None:
        args = [verb] if system_id is None else [verb, self.unit_name(system_id)]
        result = self._systemctl(*args)
        if not result.ok:
            target = system_id or "manager"
            raise ExternalToolError(
                "systemctl",
                f"{verb} {target} exited with {result.returncode}",
                returncode=result.returncode,
                output=result.output_tail(),
            )
        logger.info(f"systemctl {verb} {system_id or ''}".rstrip())

    def daemon_reload(self) -> None:
        self._checked("daemon-reload")

    def enable(self, system_id: str) -> None:
        self._checked("enable", system_id)

    def disable(self, system_id: str) -> None:
        self._checked("disable", system_id)

    def start(self, system_id: str) -> None:
        self._checked("start", system_id)

    def stop(self, system_id: str) -> None:
        self._checked("stop", system_id)

    def restart(self, system_id: str) -> None:
        self._checked("restart", system_id)

    def status_text(self, system_id: Optional[str] = None) -> str:
        """
        Raw `systemctl status` output for one unit, or for every unit.

        systemctl exits 3 for inactive units and 4 for unknown ones; the text
        is still meaningful, so only a failure to produce output is an error.
        """
        args = ["status", "--no-pager", "--lines=0"]
        if system_id is None:
            args.append("--all")
        else:
            args.append(self.unit_name(system_id))
        result = self._systemctl(*args)
        if not result.stdout and result.returncode not in (0, 3):
            raise ExternalToolError(
                "systemctl",
                f"status exited with {result.returncode}",
                returncode=result.returncode,
                output=result.output_tail(),
            )
        return result.stdout
