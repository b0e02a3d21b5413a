from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from agent.errors import ExternalToolError

logger = logging.getLogger(__name__)

OUTPUT_TAIL_CHARS = 2000


@dataclass
class ProcessResult:
    args: list[str]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def output_tail(self) -> str:
        combined = (self.stdout or "") + (self.stderr or "")
        return combined[-OUTPUT_TAIL_CHARS:]


class ProcessRunner:
    """Runs external programs; the only place the agent spawns processes."""

    def __init__(self, timeout_seconds: Optional[float] = None):
        self.timeout_seconds = timeout_seconds

    def run(
        self,
        args: Sequence[str],
        cwd: Optional[Path] = None,
        timeout: Optional[float] = None,
    ) -> ProcessResult:
        """
        Run a program to completion and capture its output.

        A nonzero exit is returned, not raised; callers decide whether it is
        fatal. Failing to start the program or hitting the timeout raises
        ExternalToolError.
        """
        argv = [str(a) for a in args]
        limit = timeout if timeout is not None else self.timeout_seconds
        logger.debug(f"Running {argv} (cwd={cwd}, timeout={limit})")

        try:
            completed = subprocess.run(
                argv,
                cwd=str(cwd) if cwd else None,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                stdin=subprocess.DEVNULL,
                text=True,
                timeout=limit,
            )
        except FileNotFoundError as e:
            raise ExternalToolError(argv[0], f"executable not found: {e}") from e
        except subprocess.TimeoutExpired as e:
            raise ExternalToolError(argv[0], f"timed out after {limit}s") from e
        except OSError as e:
            raise ExternalToolError(argv[0], f"failed to start: {e}") from e

        return ProcessResult(
            args=argv,
            returncode=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
        )
