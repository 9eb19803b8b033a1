"""Error types raised by the deployment engine.

Every failure is fatal: nothing in the engine retries or recovers, the
error travels up to the CLI which reports it and exits non-zero.
"""

from __future__ import annotations

from typing import Optional


class DeployError(RuntimeError):
    """Base class for all fatal deployment errors."""


class ConfigurationError(DeployError):
    """Raised when a config file or value is missing or malformed."""


class RemoteCommandError(DeployError):
    """Raised when a local or remote command exits non-zero."""

    def __init__(
        self,
        command: str,
        exit_status: int,
        *,
        host: Optional[str] = None,
        stdout: str = "",
        stderr: str = "",
    ) -> None:
        self.command = command
        self.exit_status = exit_status
        self.host = host
        self.stdout = stdout
        self.stderr = stderr
        where = f"on {host}" if host else "locally"
        detail = stderr or stdout
        message = f"Command {command!r} failed {where} with code {exit_status}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class TransferError(DeployError):
    """Raised when copying files to a host fails."""

    def __init__(self, host: str, local_path: str, remote_path: str, reason: str) -> None:
        self.host = host
        self.local_path = local_path
        self.remote_path = remote_path
        super().__init__(f"Copy of {local_path} to {host}:{remote_path} failed: {reason}")


class HookError(DeployError):
    """Raised when a user hook fails with a non-deployment exception."""

    def __init__(self, event: str, hook_name: str, reason: str) -> None:
        self.event = event
        self.hook_name = hook_name
        super().__init__(f"Hook {hook_name} for {event} failed: {reason}")


class ReleaseCollisionError(DeployError):
    """Raised when the new release directory already exists on a host."""

    def __init__(self, host: str, release_path: str) -> None:
        self.host = host
        self.release_path = release_path
        super().__init__(f"Release {release_path} already exists on {host}")
