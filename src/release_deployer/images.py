"""Container image staging and per-host synchronization."""

from __future__ import annotations

import posixpath
import shlex
from pathlib import Path
from typing import Optional, Sequence

from .config import ImagePairing
from .errors import ConfigurationError
from .executor import RemoteExecutor
from .utils.logging import get_logger

logger = get_logger(__name__)


def archive_name(index: int) -> str:
    return f"image-{index}.tar"


def id_file_name(index: int) -> str:
    return f"image-{index}.id"


def stored_digest(staging_dir: Path, index: int) -> str:
    """Image id recorded next to archive ``index`` when it was staged."""
    id_file = staging_dir / id_file_name(index)
    try:
        digest = id_file.read_text(encoding="utf-8").strip()
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigurationError(f"Cannot read image id {id_file}: {exc}") from exc
    if not digest:
        raise ConfigurationError(f"Image id file {id_file} is empty")
    return digest


class ImageSyncEngine:
    """Pulls and archives images locally, then ships them only where they differ."""

    def __init__(self, executor: RemoteExecutor, docker_binary: str = "docker") -> None:
        self.executor = executor
        self.docker = docker_binary

    def inspect_command(self, tag: str) -> str:
        return f"{self.docker} image inspect --format '{{{{.Id}}}}' {shlex.quote(tag)}"

    def pull_and_store(self, pairings: Sequence[ImagePairing], staging_dir: Path) -> None:
        staging_dir.mkdir(parents=True, exist_ok=True)
        for index, pairing in enumerate(pairings):
            source = shlex.quote(pairing.source)
            target = shlex.quote(pairing.target)
            archive = shlex.quote(str(staging_dir / archive_name(index)))
            logger.info("📦 Image %d: %s -> %s", index, pairing.source, pairing.target)
            self.executor.run_locally(f"{self.docker} pull {source}")
            self.executor.run_locally(f"{self.docker} tag {source} {target}")
            self.executor.run_locally(f"{self.docker} save -o {archive} {target}")
            # Same id source as the remote comparison, whatever archive layout save produced
            digest = self.executor.run_locally(self.inspect_command(pairing.target)).stdout.strip()
            if not digest:
                raise ConfigurationError(f"docker reported no image id for {pairing.target}")
            (staging_dir / id_file_name(index)).write_text(digest + "\n", encoding="utf-8")
            self.executor.run_locally(f"{self.docker} rmi {target}")

    def remote_digest(self, host: str, target_tag: str) -> Optional[str]:
        result = self.executor.run_on_host(host, self.inspect_command(target_tag), check=False)
        digest = result.stdout.strip()
        if not result.ok or not digest:
            return None
        return digest

    def sync_to_hosts(
        self,
        pairings: Sequence[ImagePairing],
        staging_dir: Path,
        remote_staging_dir: str,
    ) -> int:
        """Transfer and load each archive on hosts whose copy differs; returns transfers made."""
        transfers = 0
        for index, pairing in enumerate(pairings):
            local_archive = staging_dir / archive_name(index)
            remote_archive = posixpath.join(remote_staging_dir, archive_name(index))
            local_digest = stored_digest(staging_dir, index)
            logger.info("🔍 %s is %s locally", pairing.target, local_digest)

            def sync_host(host: str) -> bool:
                current = self.remote_digest(host, pairing.target)
                if current == local_digest:
                    logger.info("[%s] %s up to date", host, pairing.target)
                    return False
                logger.info("[%s] %s differs (%s), transferring", host, pairing.target, current or "absent")
                self.executor.run_on_host(host, f"mkdir -p {shlex.quote(remote_staging_dir)}")
                self.executor.copy_to_host(host, str(local_archive), remote_archive)
                self.executor.run_on_host(host, f"{self.docker} load -i {shlex.quote(remote_archive)}")
                return True

            transfers += sum(self.executor.for_each_host(sync_host))
        return transfers
