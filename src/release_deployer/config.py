"""Stage configuration loading for release-deployer."""

from __future__ import annotations

import json
import os
import posixpath
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from dotenv import load_dotenv

from .errors import ConfigurationError
from .paths import (
    DEFAULT_CONFIG_DIR,
    GLOBAL_CONFIG_NAME,
    HOOKS_FILE_NAME,
    default_code_dir,
    stage_config_file,
)
from .ssh.credentials import parse_host

# Load .env file if it exists
load_dotenv()

DEFAULT_KEEP_RELEASES = 5


@dataclass(frozen=True)
class ImagePairing:
    """A container image pulled as ``source`` and distributed as ``target``."""

    source: str
    target: str


@dataclass(frozen=True)
class SSHSettings:
    """Connection defaults shared by every host of a stage."""

    user: Optional[str] = None
    port: int = 22
    password: Optional[str] = None
    key_path: Optional[str] = None


@dataclass(frozen=True)
class StageConfig:
    """Immutable settings for one stage, merged from global and stage files."""

    stage: str
    application: str
    deploy_to: str
    servers: Tuple[str, ...]
    keep_releases: int = DEFAULT_KEEP_RELEASES
    images: Tuple[ImagePairing, ...] = ()
    code_dir: Path = Path("code")
    config_dir: Path = DEFAULT_CONFIG_DIR
    ssh: SSHSettings = field(default_factory=SSHSettings)
    max_workers: int = 1
    docker_binary: str = "docker"

    @property
    def hooks_file(self) -> Path:
        return self.config_dir / HOOKS_FILE_NAME


def parse_image_pairings(raw: Any) -> Tuple[ImagePairing, ...]:
    """Build pairings from a flat ``[src, dst, src, dst]`` list or a list of objects."""
    if raw is None:
        return ()
    if not isinstance(raw, list):
        raise ConfigurationError("images must be a list")
    if all(isinstance(item, dict) for item in raw):
        pairings = []
        for item in raw:
            source, target = item.get("source"), item.get("target")
            if not source or not target:
                raise ConfigurationError(f"Image entry needs source and target: {item}")
            pairings.append(ImagePairing(source=str(source), target=str(target)))
        return tuple(pairings)
    if not all(isinstance(item, str) and item for item in raw):
        raise ConfigurationError("images must be a flat list of tags or a list of objects")
    if len(raw) % 2:
        raise ConfigurationError(
            f"images must contain source/target pairs, got {len(raw)} entries"
        )
    return tuple(ImagePairing(source=raw[i], target=raw[i + 1]) for i in range(0, len(raw), 2))


def _read_json(path: Path) -> Dict[str, Any]:
    if not path.is_file():
        raise ConfigurationError(f"Configuration file not found: {path}")
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = json.load(handle)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ConfigurationError(f"Cannot read {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path} must contain a JSON object")
    # Keys starting with an underscore are comments
    return {k: v for k, v in data.items() if not k.startswith("_")}


def _require(payload: Dict[str, Any], key: str) -> Any:
    value = payload.get(key)
    if value in (None, "", []):
        raise ConfigurationError(f"Missing required setting: {key}")
    return value


def _as_int(payload: Dict[str, Any], key: str, default: int, minimum: int) -> int:
    value = payload.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
        raise ConfigurationError(f"{key} must be an integer >= {minimum}, got {value!r}")
    return value


def _parse_servers(raw: Any) -> Tuple[str, ...]:
    if not isinstance(raw, list) or not all(isinstance(s, str) and s for s in raw):
        raise ConfigurationError("servers must be a list of host identifiers")
    seen: List[str] = []
    for server in raw:
        if server in seen:
            raise ConfigurationError(f"Duplicate server: {server}")
        try:
            parse_host(server)
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from exc
        seen.append(server)
    return tuple(seen)


def load_stage_config(stage: str, config_dir: Optional[str] = None) -> StageConfig:
    """Load ``config.json`` then ``stages/<stage>.json`` from ``config_dir``.

    Stage values win on conflict. Environment variables (higher priority):
    - RELEASE_DEPLOYER_SSH_PASSWORD: password for every host
    - RELEASE_DEPLOYER_SSH_KEY_PATH: private key used for key authentication
    - RELEASE_DEPLOYER_SSH_USER: default SSH username
    """
    root = Path(config_dir) if config_dir else DEFAULT_CONFIG_DIR
    payload = _read_json(root / GLOBAL_CONFIG_NAME)
    payload.update(_read_json(stage_config_file(root, stage)))

    application = str(_require(payload, "application"))
    deploy_to = str(_require(payload, "deploy_to"))
    if not posixpath.isabs(deploy_to):
        raise ConfigurationError(f"deploy_to must be an absolute path, got {deploy_to}")

    code_dir = payload.get("code_dir")
    if code_dir:
        code_path = Path(code_dir)
        if not code_path.is_absolute():
            code_path = root / code_path
    else:
        code_path = default_code_dir(root, stage)

    ssh = SSHSettings(
        user=os.getenv("RELEASE_DEPLOYER_SSH_USER") or payload.get("ssh_user"),
        port=_as_int(payload, "ssh_port", 22, 1),
        password=os.getenv("RELEASE_DEPLOYER_SSH_PASSWORD") or None,
        key_path=os.getenv("RELEASE_DEPLOYER_SSH_KEY_PATH") or payload.get("ssh_key_path"),
    )

    return StageConfig(
        stage=stage,
        application=application,
        deploy_to=deploy_to.rstrip("/") or "/",
        servers=_parse_servers(_require(payload, "servers")),
        keep_releases=_as_int(payload, "keep_releases", DEFAULT_KEEP_RELEASES, 0),
        images=parse_image_pairings(payload.get("images")),
        code_dir=code_path,
        config_dir=root,
        ssh=ssh,
        max_workers=_as_int(payload, "max_workers", 1, 1),
        docker_binary=str(payload.get("docker_binary") or "docker"),
    )
