"""Release identity, atomic publishing, retention and revision history."""

from __future__ import annotations

import getpass
import posixpath
import shlex
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from .config import StageConfig
from .errors import ReleaseCollisionError, RemoteCommandError
from .executor import RemoteExecutor
from .paths import local_tmp_dir
from .utils.logging import get_logger

logger = get_logger(__name__)

RELEASE_ID_FORMAT = "%Y%m%d-%H%M%S"
REVISIONS_LOG = "revisions.log"


@dataclass(frozen=True)
class RunContext:
    """Per-invocation values computed once, right after config load."""

    stage: str
    version: str
    release_id: str
    actor: str
    deploy_to: str
    current_path: str
    releases_path: str
    release_path: str
    tmp_path: str
    local_tmp_path: Path

    @property
    def remote_code_path(self) -> str:
        return posixpath.join(self.tmp_path, "code")

    @property
    def remote_images_path(self) -> str:
        return posixpath.join(self.tmp_path, "images")

    @property
    def local_images_path(self) -> Path:
        return self.local_tmp_path / "images"

    @property
    def revisions_log(self) -> str:
        return posixpath.join(self.deploy_to, REVISIONS_LOG)


def generate_release_id(now: Optional[datetime] = None) -> str:
    return (now or datetime.now()).strftime(RELEASE_ID_FORMAT)


def select_stale_releases(
    names: Sequence[str],
    keep: int,
    current: Optional[str] = None,
) -> List[str]:
    """Return the releases to delete, newest first.

    Identifiers sort chronologically, so the ``keep`` largest names are
    retained. ``keep == 0`` means unlimited retention. ``current`` is never
    returned even when it falls outside the keep window.
    """
    if keep <= 0:
        return []
    ordered = sorted({name for name in names if name}, reverse=True)
    return [name for name in ordered[keep:] if name != current]


def revision_line(version: str, release_id: str, actor: str) -> str:
    return f"{version} deployed as {release_id} by {actor}"


class ReleaseManager:
    """Manages the ``current`` / ``releases`` / ``revisions.log`` layout on hosts."""

    def __init__(self, executor: RemoteExecutor, context: RunContext) -> None:
        self.executor = executor
        self.context = context

    @staticmethod
    def establish_release(
        config: StageConfig,
        version: str,
        *,
        clock: Callable[[], datetime] = datetime.now,
        actor: Optional[str] = None,
    ) -> RunContext:
        release_id = generate_release_id(clock())
        releases_path = posixpath.join(config.deploy_to, "releases")
        context = RunContext(
            stage=config.stage,
            version=version,
            release_id=release_id,
            actor=actor or getpass.getuser(),
            deploy_to=config.deploy_to,
            current_path=posixpath.join(config.deploy_to, "current"),
            releases_path=releases_path,
            release_path=posixpath.join(releases_path, release_id),
            tmp_path=posixpath.join(config.deploy_to, "tmp"),
            local_tmp_path=local_tmp_dir(config.stage, version),
        )
        logger.info("Release %s for %s %s", release_id, config.application, version)
        return context

    def ensure_unique(self, host: str) -> None:
        """Fail if this run's release directory already exists on ``host``."""
        path = self.context.release_path
        existing = self.executor.run_on_host(host, f"test -e {shlex.quote(path)}", check=False)
        if existing.ok:
            raise ReleaseCollisionError(host, path)

    def publish(self, host: str) -> None:
        """Repoint ``current`` at the new release with a single rename.

        The link is built next to ``current`` and moved over it, so readers
        see either the old or the new target, never a missing link.
        """
        release = self.context.release_path
        current = self.context.current_path
        staged = f"{current}.tmp-{self.context.release_id}"
        self.executor.run_on_host(
            host,
            f"ln -sfn {shlex.quote(release)} {shlex.quote(staged)} && "
            f"mv -T {shlex.quote(staged)} {shlex.quote(current)}",
        )
        target = self.executor.run_on_host(host, f"readlink {shlex.quote(current)}").stdout
        if target.strip() != release:
            raise RemoteCommandError(
                f"readlink {current}",
                1,
                host=host,
                stderr=f"current points at {target.strip()!r}, expected {release!r}",
            )

    def list_releases(self, host: str) -> List[str]:
        result = self.executor.run_on_host(
            host, f"ls -1 {shlex.quote(self.context.releases_path)}", check=False
        )
        if not result.ok:
            return []
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def current_release(self, host: str) -> Optional[str]:
        result = self.executor.run_on_host(
            host, f"readlink {shlex.quote(self.context.current_path)}", check=False
        )
        if not result.ok or not result.stdout.strip():
            return None
        return posixpath.basename(result.stdout.strip().rstrip("/"))

    def cleanup(self, host: str, keep: int) -> List[str]:
        """Remove releases beyond the newest ``keep`` on ``host``; returns removed names."""
        if keep <= 0:
            return []
        names = self.list_releases(host)
        current = self.current_release(host)
        stale = select_stale_releases(names, keep, current)
        window = sorted(names, reverse=True)[:keep]
        if current and current in names and current not in window:
            logger.warning(
                "[%s] current release %s is older than the newest %d releases; keeping it",
                host,
                current,
                keep,
            )
        if stale:
            paths = " ".join(
                shlex.quote(posixpath.join(self.context.releases_path, name)) for name in stale
            )
            self.executor.run_on_host(host, f"rm -rf {paths}")
            logger.info("[%s] removed %d old release(s)", host, len(stale))
        return stale

    def log_revision(self, host: str) -> str:
        line = revision_line(self.context.version, self.context.release_id, self.context.actor)
        self.executor.run_on_host(
            host,
            f"echo {shlex.quote(line)} >> {shlex.quote(self.context.revisions_log)}",
        )
        return line
