"""
External collaborators used by the lifecycle manager.

- process: subprocess wrapper with timeouts
- git_client: checkout of app repositories
- shell_runner: install commands (bash -c)
- service_manager: systemd unit files and systemctl calls
"""
