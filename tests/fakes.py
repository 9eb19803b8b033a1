"""Test doubles for local and remote sessions."""

from __future__ import annotations

import shutil
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from release_deployer.local import LocalSession
from release_deployer.ssh import CommandResult, SSHCredentials

Responder = Callable[[str, str], Optional[CommandResult]]


def ok(command: str, stdout: str = "") -> CommandResult:
    return CommandResult(command=command, stdout=stdout, stderr="", exit_status=0)


def failed(command: str, stderr: str = "boom", status: int = 1) -> CommandResult:
    return CommandResult(command=command, stdout="", stderr=stderr, exit_status=status)


class ScriptedHosts:
    """Records every command and answers through an optional responder.

    ``calls`` holds ``(where, command)`` tuples where ``where`` is ``"local"``
    or the host address. Uploads are recorded as ``put <local> <remote>``.
    """

    def __init__(self, responder: Optional[Responder] = None) -> None:
        self.calls: List[Tuple[str, str]] = []
        self.responder = responder

    def respond(self, where: str, command: str) -> CommandResult:
        self.calls.append((where, command))
        if self.responder:
            result = self.responder(where, command)
            if result is not None:
                return result
        return ok(command)

    def session_factory(self, credentials: SSHCredentials) -> "ScriptedSession":
        return ScriptedSession(self, credentials.host)

    def local_session(self) -> "ScriptedLocal":
        return ScriptedLocal(self)

    def commands(self, where: Optional[str] = None) -> List[str]:
        return [cmd for host, cmd in self.calls if where is None or host == where]


class ScriptedSession:
    def __init__(self, hosts: ScriptedHosts, host: str) -> None:
        self.hosts = hosts
        self.host = host

    def __enter__(self) -> "ScriptedSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        return None

    def run(self, command: str, *, timeout=None) -> CommandResult:
        return self.hosts.respond(self.host, command)

    def put(self, local_path: str, remote_path: str) -> None:
        self.hosts.calls.append((self.host, f"put {local_path} {remote_path}"))


class ScriptedLocal(LocalSession):
    def __init__(self, hosts: ScriptedHosts) -> None:
        super().__init__()
        self.hosts = hosts

    def run(self, command: str, *, timeout=None) -> CommandResult:
        return self.hosts.respond("local", command)


class SandboxHosts:
    """Runs remote commands with real bash inside a per-host directory.

    Paths under ``deploy_to`` are rewritten to ``<root>/<host>/...`` on the
    way in and mapped back in command output, so every host gets its own
    filesystem while commands keep their production paths.
    """

    def __init__(self, root: Path, deploy_to: str) -> None:
        self.root = root
        self.deploy_to = deploy_to
        self.calls: List[Tuple[str, str]] = []

    def host_root(self, host: str) -> Path:
        return self.root / host / self.deploy_to.strip("/")

    def local_path(self, host: str, remote_path: str) -> Path:
        relative = remote_path[len(self.deploy_to):].lstrip("/")
        return self.host_root(host) / relative

    def session_factory(self, credentials: SSHCredentials) -> "SandboxSession":
        return SandboxSession(self, credentials.host)


class SandboxSession:
    def __init__(self, hosts: SandboxHosts, host: str) -> None:
        self.hosts = hosts
        self.host = host

    def __enter__(self) -> "SandboxSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        return None

    def run(self, command: str, *, timeout=None) -> CommandResult:
        self.hosts.calls.append((self.host, command))
        real_root = self.hosts.host_root(self.host)
        real_root.mkdir(parents=True, exist_ok=True)
        bash = LocalSession(working_dir=str(real_root))
        result = bash.run(command.replace(self.hosts.deploy_to, str(real_root)))
        result.command = command
        result.stdout = result.stdout.replace(str(real_root), self.hosts.deploy_to)
        return result

    def put(self, local_path: str, remote_path: str) -> None:
        self.hosts.calls.append((self.host, f"put {local_path} {remote_path}"))
        target = self.hosts.local_path(self.host, remote_path)
        if Path(local_path).is_dir():
            shutil.copytree(local_path, target)
        else:
            shutil.copy2(local_path, target)
