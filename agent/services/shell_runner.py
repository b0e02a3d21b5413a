from pathlib import Path

from agent.services.process import ProcessResult, ProcessRunner


class ShellRunner:
    """Runs operator-supplied command strings through `bash -c`."""

    def __init__(self, runner: ProcessRunner, shell: str = "bash"):
        self.runner = runner
        self.shell = shell

    def run(self, command: str, cwd: Path) -> ProcessResult:
        return self.runner.run([self.shell, "-c", command], cwd=cwd)
