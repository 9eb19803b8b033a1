"""SSH session management built on Paramiko."""

from __future__ import annotations

import os
import posixpath
import stat
import time
from dataclasses import dataclass
from typing import Callable, List, Optional

import paramiko

from ..errors import DeployError
from .credentials import SSHCredentials

RECV_CHUNK_SIZE = 32768
POLL_INTERVAL = 0.05


class SSHConnectionError(DeployError):
    """Raised when an SSH connection cannot be established."""

    pass


@dataclass
class CommandResult:
    """Outcome of one local or remote command."""

    command: str
    stdout: str
    stderr: str
    exit_status: int
    host: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.exit_status == 0


class SSHSession:
    """High-level wrapper around paramiko.SSHClient.

    One session is opened per operation; nothing is pooled between calls.
    """

    def __init__(
        self,
        credentials: SSHCredentials,
        *,
        client_factory: Callable[[], paramiko.SSHClient] | None = None,
    ) -> None:
        self.credentials = credentials
        self._client_factory = client_factory or paramiko.SSHClient
        self._client: Optional[paramiko.SSHClient] = None

    def __enter__(self) -> "SSHSession":
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # type: ignore[override]
        self.close()

    def connect(self) -> None:
        if self._client:
            return
        client = self._client_factory()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        connect_kwargs = {
            "hostname": self.credentials.host,
            "port": self.credentials.port,
            "timeout": self.credentials.timeout,
        }
        if self.credentials.username:
            connect_kwargs["username"] = self.credentials.username
        if self.credentials.auth_method == "password":
            connect_kwargs["password"] = self.credentials.password
            connect_kwargs["look_for_keys"] = False
            connect_kwargs["allow_agent"] = False
        else:
            connect_kwargs["look_for_keys"] = True
            connect_kwargs["allow_agent"] = True
            if self.credentials.key_path:
                connect_kwargs["key_filename"] = self.credentials.key_path
        try:
            client.connect(**connect_kwargs)
        except Exception as exc:  # pragma: no cover - network errors hard to simulate
            client.close()
            raise SSHConnectionError(str(exc)) from exc
        self._client = client

    def close(self) -> None:
        if self._client:
            self._client.close()
            self._client = None

    def run(self, command: str, *, timeout: Optional[float] = None) -> CommandResult:
        """Execute a command on the remote server and wait for it to finish.

        With ``timeout=None`` the call blocks until the remote command exits.
        """
        if not self._client:
            self.connect()
        assert self._client is not None

        _, stdout, stderr = self._client.exec_command(command, timeout=timeout)
        channel = stdout.channel
        out_chunks: List[bytes] = []
        err_chunks: List[bytes] = []
        # Drain both streams while waiting; a full window would stall the remote side
        while not channel.exit_status_ready():
            drained = False
            while channel.recv_ready():
                out_chunks.append(channel.recv(RECV_CHUNK_SIZE))
                drained = True
            while channel.recv_stderr_ready():
                err_chunks.append(channel.recv_stderr(RECV_CHUNK_SIZE))
                drained = True
            if not drained:
                time.sleep(POLL_INTERVAL)
        out_chunks.append(stdout.read())
        err_chunks.append(stderr.read())
        exit_status = channel.recv_exit_status()
        stdout_text = b"".join(out_chunks).decode("utf-8", errors="replace")
        stderr_text = b"".join(err_chunks).decode("utf-8", errors="replace")
        return CommandResult(
            command=command,
            stdout=stdout_text.strip(),
            stderr=stderr_text.strip(),
            exit_status=exit_status,
            host=self.credentials.host,
        )

    def put(self, local_path: str, remote_path: str) -> None:
        """Copy a file or a directory tree to ``remote_path`` over SFTP."""
        if not self._client:
            self.connect()
        assert self._client is not None

        sftp = self._client.open_sftp()
        try:
            if os.path.isdir(local_path):
                self._put_tree(sftp, local_path, remote_path)
            else:
                sftp.put(local_path, remote_path)
        finally:
            sftp.close()

    def _put_tree(self, sftp: paramiko.SFTPClient, local_dir: str, remote_dir: str) -> None:
        self._ensure_remote_dir(sftp, remote_dir)
        for entry in sorted(os.listdir(local_dir)):
            local_entry = os.path.join(local_dir, entry)
            remote_entry = posixpath.join(remote_dir, entry)
            if os.path.isdir(local_entry):
                self._put_tree(sftp, local_entry, remote_entry)
            else:
                sftp.put(local_entry, remote_entry)
                sftp.chmod(remote_entry, stat.S_IMODE(os.stat(local_entry).st_mode))

    @staticmethod
    def _ensure_remote_dir(sftp: paramiko.SFTPClient, remote_dir: str) -> None:
        try:
            sftp.stat(remote_dir)
        except FileNotFoundError:
            sftp.mkdir(remote_dir)
