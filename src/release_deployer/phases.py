"""Phase/step state machine: prepare, deliver and deploy.

::

    deploy   := before:deploy  -> prepare -> deliver -> after:deploy
    prepare  := before:prepare -> clean_local -> pull_images -> after:prepare
    deliver  := before:deliver -> clean_remote -> push_images -> push_code
                -> publish_release -> cleanup_releases -> log_revision
                -> after:deliver

Every phase and step fires ``before:<name>`` on entry and ``after:<name>``
on success. The image steps are skipped entirely, hooks included, when the
stage has no image pairings. Any error aborts the run where it happens.
"""

from __future__ import annotations

import shlex
import shutil
from contextlib import contextmanager
from typing import Iterator, List, Optional

from .config import StageConfig
from .errors import ConfigurationError
from .executor import RemoteExecutor
from .hooks import HookContext, HookDispatcher, HookRegistry
from .images import ImageSyncEngine
from .releases import ReleaseManager, RunContext
from .utils.logging import get_logger

logger = get_logger(__name__)

PREPARE_STEPS = ("clean_local", "pull_images")
DELIVER_STEPS = (
    "clean_remote",
    "push_images",
    "push_code",
    "publish_release",
    "cleanup_releases",
    "log_revision",
)
IMAGE_STEPS = frozenset({"pull_images", "push_images"})


class Deployer:
    """Drives the fixed deployment workflow for one stage and version."""

    def __init__(
        self,
        config: StageConfig,
        context: RunContext,
        executor: RemoteExecutor,
        registry: Optional[HookRegistry] = None,
    ) -> None:
        self.config = config
        self.context = context
        self.executor = executor
        self.registry = registry or HookRegistry()
        self.hooks = HookDispatcher(
            self.registry,
            config.stage,
            HookContext(config=config, run=context, executor=executor),
        )
        self.releases = ReleaseManager(executor, context)
        self.images = ImageSyncEngine(executor, config.docker_binary)
        self.completed: List[str] = []

    @contextmanager
    def _hooked(self, name: str) -> Iterator[None]:
        self.hooks.trigger(f"before:{name}")
        yield
        self.hooks.trigger(f"after:{name}")
        self.completed.append(name)

    def _step(self, name: str) -> None:
        if name in IMAGE_STEPS and not self.config.images:
            logger.info("⏭️  %s skipped (no images configured)", name)
            return
        logger.info("▶ %s", name)
        with self._hooked(name):
            getattr(self, name)()

    # Phases

    def deploy(self) -> None:
        logger.info("🚀 Deploying %s %s to %s", self.config.application, self.context.version, self.config.stage)
        with self._hooked("deploy"):
            self.prepare()
            self.deliver()
        logger.info("✅ Deployed %s as %s", self.context.version, self.context.release_id)

    def prepare(self) -> None:
        logger.info("=== prepare ===")
        with self._hooked("prepare"):
            for name in PREPARE_STEPS:
                self._step(name)

    def deliver(self) -> None:
        logger.info("=== deliver ===")
        with self._hooked("deliver"):
            for name in DELIVER_STEPS:
                self._step(name)

    # Steps

    def clean_local(self) -> None:
        staging = self.context.local_tmp_path
        if staging.exists():
            shutil.rmtree(staging)
        staging.mkdir(parents=True, exist_ok=True)
        logger.info("Local staging at %s", staging)

    def pull_images(self) -> None:
        self.images.pull_and_store(self.config.images, self.context.local_images_path)

    def clean_remote(self) -> None:
        tmp = shlex.quote(self.context.tmp_path)
        self.executor.run_on_all_hosts(f"rm -rf {tmp} && mkdir -p {tmp}")

    def push_images(self) -> None:
        self.images.sync_to_hosts(
            self.config.images,
            self.context.local_images_path,
            self.context.remote_images_path,
        )

    def push_code(self) -> None:
        code_dir = self.config.code_dir
        if not code_dir.is_dir():
            raise ConfigurationError(f"Code directory not found: {code_dir}")

        upload = self.context.remote_code_path
        release = shlex.quote(self.context.release_path)
        # Upload everywhere first; nothing is installed until every host has the full tree
        self.executor.run_on_all_hosts(f"rm -rf {shlex.quote(upload)}")
        self.executor.copy_to_all_hosts(str(code_dir), upload)
        self.executor.for_each_host(self.releases.ensure_unique)
        self.executor.run_on_all_hosts(
            f"mkdir -p {shlex.quote(self.context.releases_path)} && "
            f"cp -a {shlex.quote(upload)} {release}"
        )

    def publish_release(self) -> None:
        self.executor.for_each_host(self.releases.publish)

    def cleanup_releases(self) -> None:
        keep = self.config.keep_releases
        if keep == 0:
            logger.info("keep_releases is 0, retaining every release")
            return
        self.executor.for_each_host(lambda host: self.releases.cleanup(host, keep))

    def log_revision(self) -> None:
        self.executor.for_each_host(self.releases.log_revision)
