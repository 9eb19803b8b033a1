"""SSH port-forwarding helper for hooks."""

from __future__ import annotations

import subprocess
import time
from contextlib import contextmanager
from typing import Iterator, Optional

from ..utils.logging import get_logger
from .credentials import parse_host

logger = get_logger(__name__)


@contextmanager
def tunnel(
    host: str,
    local_port: int,
    remote_port: int,
    *,
    remote_host: str = "localhost",
    key_path: Optional[str] = None,
    ssh_binary: str = "ssh",
    settle_seconds: float = 1.0,
) -> Iterator[subprocess.Popen]:
    """Forward ``localhost:local_port`` to ``remote_host:remote_port`` via ``host``.

    The forwarding process is terminated on exit whether or not the body
    raised. Uses the system ssh client, so only key/agent auth is supported.
    """
    username, address, port = parse_host(host)
    target = f"{username}@{address}" if username else address
    command = [
        ssh_binary,
        "-N",
        "-o", "ExitOnForwardFailure=yes",
        "-p", str(port),
        "-L", f"{local_port}:{remote_host}:{remote_port}",
    ]
    if key_path:
        command += ["-i", key_path]
    command.append(target)

    logger.info("Opening tunnel localhost:%d -> %s:%d via %s", local_port, remote_host, remote_port, host)
    process = subprocess.Popen(command, stdout=subprocess.DEVNULL, stderr=subprocess.PIPE)
    try:
        time.sleep(settle_seconds)
        yield process
    finally:
        process.terminate()
        try:
            process.wait(timeout=5)
        except subprocess.TimeoutExpired:
            process.kill()
            process.wait()
        logger.info("Closed tunnel via %s", host)
