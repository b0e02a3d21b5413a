"""
Agent error taxonomy.

Only AuthError ends a control session. Every other AgentError is caught at
the command boundary and turned into a failure response frame.
"""
from typing import Optional


class AgentError(Exception):
    """Base class for errors reported back to the operator."""

    kind = "AgentError"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message
        self.details = None  # structured payload echoed in the failure response


class AuthError(AgentError):
    kind = "AuthError"


class NotFoundError(AgentError):
    kind = "NotFoundError"

    def __init__(self, app_id: str):
        super().__init__(f"App not found: {app_id}")
        self.app_id = app_id


class InvalidRepoError(AgentError):
    kind = "InvalidRepoError"

    def __init__(self, repo: str, reason: str = "unrecognized remote URL form"):
        super().__init__(f"Invalid repository '{repo}': {reason}")
        self.repo = repo


class AlreadyInstalledError(AgentError):
    kind = "AlreadyInstalledError"

    def __init__(self, app_id: str, conflict: Optional[str] = None):
        message = f"App already installed: {app_id}"
        if conflict:
            message = f"{message} ({conflict})"
        super().__init__(message)
        self.app_id = app_id


class ExternalToolError(AgentError):
    """A git, shell or systemctl invocation failed or could not be run."""

    kind = "ExternalToolError"

    def __init__(self, tool: str, message: str, returncode: Optional[int] = None, output: str = ""):
        super().__init__(f"{tool}: {message}")
        self.tool = tool
        self.returncode = returncode
        self.output = output


class ParseError(AgentError):
    kind = "ParseError"


class StorageError(AgentError):
    """Filesystem failure while persisting the registry."""

    kind = "StorageError"
