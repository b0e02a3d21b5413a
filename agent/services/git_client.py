import logging
from pathlib import Path

from agent.errors import ExternalToolError
from agent.services.process import ProcessRunner

logger = logging.getLogger(__name__)


class GitClient:
    """Checks out app repositories with the `git` CLI."""

    def __init__(self, runner: ProcessRunner, executable: str = "git"):
        self.runner = runner
        self.executable = executable

    def clone(self, repo: str, branch: str, dest: Path) -> None:
        """Clone `branch` of `repo` into `dest`; raises ExternalToolError on failure"""
        logger.info(f"Cloning branch `{branch}` from `{repo}` into {dest}")
        result = self.runner.run(
            [self.executable, "clone", "-b", branch, "--", repo, str(dest)],
            cwd=dest.parent,
        )
        if not result.ok:
            raise ExternalToolError(
                "git",
                f"clone of {repo} ({branch}) exited with {result.returncode}",
                returncode=result.returncode,
                output=result.output_tail(),
            )
