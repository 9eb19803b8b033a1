"""Local and remote command execution for the deployment engine."""

from __future__ import annotations

from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Callable, List, Optional, Sequence, TypeVar

import paramiko

from .config import StageConfig
from .errors import RemoteCommandError, TransferError
from .local import LocalSession
from .ssh import CommandResult, SSHCredentials, SSHSession, parse_host
from .utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

SessionFactory = Callable[[SSHCredentials], SSHSession]


class HostStrategy(ABC):
    """Decides how a per-host operation is spread over the server list."""

    @abstractmethod
    def map(self, hosts: Sequence[str], operation: Callable[[str], T]) -> List[T]:
        """Apply ``operation`` to every host; results follow the order of ``hosts``."""


class SequentialStrategy(HostStrategy):
    """One host at a time in declared order, stopping at the first failure."""

    def map(self, hosts: Sequence[str], operation: Callable[[str], T]) -> List[T]:
        return [operation(host) for host in hosts]


class ConcurrentStrategy(HostStrategy):
    """Bounded thread pool over hosts.

    Results keep the declared host order. Once every submitted operation has
    finished, the first failure in host order is re-raised.
    """

    def __init__(self, max_workers: int) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        self.max_workers = max_workers

    def map(self, hosts: Sequence[str], operation: Callable[[str], T]) -> List[T]:
        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            futures = [pool.submit(operation, host) for host in hosts]
            wait(futures)
        return [future.result() for future in futures]


def strategy_for(max_workers: int) -> HostStrategy:
    if max_workers > 1:
        return ConcurrentStrategy(max_workers)
    return SequentialStrategy()


class RemoteExecutor:
    """Runs commands locally or on stage hosts and copies files to hosts.

    Every call blocks until the command finishes. A fresh SSH session is
    opened for each remote operation. Non-zero exits raise
    :class:`RemoteCommandError` unless ``check=False``.
    """

    def __init__(
        self,
        config: StageConfig,
        *,
        session_factory: Optional[SessionFactory] = None,
        local_session: Optional[LocalSession] = None,
        strategy: Optional[HostStrategy] = None,
    ) -> None:
        self.config = config
        self._session_factory = session_factory or SSHSession
        self._local = local_session or LocalSession()
        self.strategy = strategy or strategy_for(config.max_workers)

    @property
    def servers(self) -> Sequence[str]:
        return self.config.servers

    def credentials_for(self, host: str) -> SSHCredentials:
        username, address, port = parse_host(
            host,
            default_user=self.config.ssh.user,
            default_port=self.config.ssh.port,
        )
        return SSHCredentials(
            host=address,
            username=username,
            port=port,
            password=self.config.ssh.password,
            key_path=self.config.ssh.key_path,
        )

    def run_locally(self, command: str, *, check: bool = True) -> CommandResult:
        logger.info("$ %s", command)
        result = self._local.run(command)
        return self._checked(result, check)

    def run_on_host(self, host: str, command: str, *, check: bool = True) -> CommandResult:
        logger.info("[%s] $ %s", host, command)
        try:
            with self._session_factory(self.credentials_for(host)) as session:
                result = session.run(command)
        except paramiko.SSHException as exc:
            raise RemoteCommandError(command, -1, host=host, stderr=str(exc)) from exc
        result.host = host
        return self._checked(result, check)

    def run_on_all_hosts(self, command: str, *, check: bool = True) -> List[CommandResult]:
        return self.for_each_host(lambda host: self.run_on_host(host, command, check=check))

    def copy_to_host(self, host: str, local_path: str, remote_path: str) -> None:
        logger.info("[%s] copy %s -> %s", host, local_path, remote_path)
        try:
            with self._session_factory(self.credentials_for(host)) as session:
                session.put(str(local_path), remote_path)
        except (OSError, paramiko.SSHException) as exc:
            raise TransferError(host, str(local_path), remote_path, str(exc)) from exc

    def copy_to_all_hosts(self, local_path: str, remote_path: str) -> None:
        self.for_each_host(lambda host: self.copy_to_host(host, local_path, remote_path))

    def for_each_host(self, operation: Callable[[str], T]) -> List[T]:
        """Run a per-host operation over the stage servers using the configured strategy."""
        return self.strategy.map(self.servers, operation)

    @staticmethod
    def _checked(result: CommandResult, check: bool) -> CommandResult:
        if result.stdout:
            logger.debug("%s", result.stdout)
        if check and not result.ok:
            raise RemoteCommandError(
                result.command,
                result.exit_status,
                host=result.host,
                stdout=result.stdout,
                stderr=result.stderr,
            )
        return result
