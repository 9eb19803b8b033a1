"""SSH credential helpers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass
class SSHCredentials:
    """Normalized credential payload for one host."""

    host: str
    username: Optional[str] = None
    port: int = 22
    password: Optional[str] = None
    key_path: Optional[str] = None
    timeout: int = 20

    @property
    def auth_method(self) -> str:
        """``password`` when a credential is set, otherwise ambient key/agent auth."""
        return "password" if self.password else "key"


def parse_host(
    handle: str,
    *,
    default_user: Optional[str] = None,
    default_port: int = 22,
) -> tuple[Optional[str], str, int]:
    """Split a ``[user@]host[:port]`` identifier.

    Values given in the identifier win over the defaults.
    """
    username = default_user
    address = handle.strip()
    if "@" in address:
        username, address = address.rsplit("@", 1)
    port = default_port
    if address.count(":") == 1:
        address, raw_port = address.split(":")
        if not raw_port.isdigit():
            raise ValueError(f"Invalid port in host identifier: {handle}")
        port = int(raw_port)
    if not address:
        raise ValueError(f"Empty host in identifier: {handle}")
    return username, address, port
