"""SSH utilities for release-deployer."""

from .credentials import SSHCredentials, parse_host
from .session import CommandResult, SSHConnectionError, SSHSession
from .tunnel import tunnel

__all__ = [
    "SSHCredentials",
    "CommandResult",
    "SSHConnectionError",
    "SSHSession",
    "parse_host",
    "tunnel",
]
