"""Local command execution session."""

from __future__ import annotations

import os
import subprocess
from typing import Optional

from ..ssh.session import CommandResult


class LocalSession:
    """
    Local command execution session.

    Provides the same ``run`` interface as SSHSession but executes commands
    on this machine through bash.
    """

    def __init__(self, working_dir: Optional[str] = None, shell: str = "/bin/bash") -> None:
        """
        Initialize local session.

        Args:
            working_dir: Working directory for commands. Defaults to the current directory.
            shell: Shell executable used to interpret commands.
        """
        self.working_dir = working_dir or os.getcwd()
        self.shell = shell

    def __enter__(self) -> "LocalSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        return None

    def run(self, command: str, *, timeout: Optional[float] = None) -> CommandResult:
        """
        Execute a command locally and wait for it to complete.

        Args:
            command: The command to execute
            timeout: Optional limit in seconds; ``None`` blocks until exit

        Returns:
            CommandResult with stdout, stderr, and exit status
        """
        try:
            process = subprocess.run(
                command,
                shell=True,
                capture_output=True,
                text=True,
                timeout=timeout,
                cwd=self.working_dir,
                env=os.environ.copy(),
                executable=self.shell,
            )
        except subprocess.TimeoutExpired:
            return CommandResult(
                command=command,
                stdout="",
                stderr=f"Command timed out after {timeout} seconds",
                exit_status=-1,
            )
        return CommandResult(
            command=command,
            stdout=process.stdout.strip(),
            stderr=process.stderr.strip(),
            exit_status=process.returncode,
        )
