"""Hook registry and dispatch.

Hooks are plain callables registered against an event name such as
``before:push_code``, optionally scoped to a stage (``before:push_code``
for ``production`` is stored under ``before:push_code:production``).
Extension files expose a ``register(registry)`` function that is called
once before the run starts.
"""

from __future__ import annotations

import importlib.util
from collections import defaultdict
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Callable, DefaultDict, List, Optional

from .errors import ConfigurationError, DeployError, HookError
from .utils.logging import get_logger

if TYPE_CHECKING:
    from .config import StageConfig
    from .executor import RemoteExecutor
    from .releases import RunContext

logger = get_logger(__name__)


@dataclass(frozen=True)
class HookContext:
    """What a hook receives: the stage settings, the run paths and an executor."""

    config: "StageConfig"
    run: "RunContext"
    executor: "RemoteExecutor"


Hook = Callable[[HookContext], None]


def hook_key(event: str, stage: Optional[str] = None) -> str:
    return f"{event}:{stage}" if stage else event


class HookRegistry:
    """Ordered mapping from hook key to registered callables."""

    def __init__(self) -> None:
        self._hooks: DefaultDict[str, List[Hook]] = defaultdict(list)

    def register(self, event: str, func: Hook, stage: Optional[str] = None) -> Hook:
        if not callable(func):
            raise TypeError(f"Hook for {event} is not callable: {func!r}")
        self._hooks[hook_key(event, stage)].append(func)
        return func

    def on(self, event: str, stage: Optional[str] = None) -> Callable[[Hook], Hook]:
        """Decorator form of :meth:`register`."""

        def decorator(func: Hook) -> Hook:
            return self.register(event, func, stage=stage)

        return decorator

    def lookup(self, key: str) -> List[Hook]:
        return list(self._hooks.get(key, ()))

    def __contains__(self, key: str) -> bool:
        return bool(self._hooks.get(key))


def load_extensions(registry: HookRegistry, path: Path) -> bool:
    """Import ``path`` and let it populate ``registry``.

    Returns False when the file does not exist.
    """
    if not path.is_file():
        logger.debug("No hook file at %s", path)
        return False

    spec = importlib.util.spec_from_file_location(f"release_deployer_hooks_{path.stem}", path)
    if spec is None or spec.loader is None:
        raise ConfigurationError(f"Cannot import hook file {path}")
    module = importlib.util.module_from_spec(spec)
    try:
        spec.loader.exec_module(module)
    except Exception as exc:
        raise ConfigurationError(f"Failed to load hook file {path}: {exc}") from exc

    register = getattr(module, "register", None)
    if not callable(register):
        raise ConfigurationError(f"Hook file {path} must define register(registry)")
    try:
        register(registry)
    except Exception as exc:
        raise ConfigurationError(f"register() in hook file {path} failed: {exc}") from exc
    logger.info("Loaded hooks from %s", path)
    return True


class HookDispatcher:
    """Fires the global then the stage-scoped hooks for an event."""

    def __init__(self, registry: HookRegistry, stage: str, context: HookContext) -> None:
        self.registry = registry
        self.stage = stage
        self.context = context

    def trigger(self, event: str) -> int:
        """Run hooks for ``event``; returns how many were invoked."""
        fired = 0
        for key in (hook_key(event), hook_key(event, self.stage)):
            for hook in self.registry.lookup(key):
                self._invoke(key, hook)
                fired += 1
        if fired:
            logger.info("🪝 %s (%d hook%s)", event, fired, "" if fired == 1 else "s")
        else:
            logger.debug("%s (no hooks)", event)
        return fired

    def _invoke(self, key: str, hook: Hook) -> None:
        name = getattr(hook, "__qualname__", repr(hook))
        logger.info("Running hook %s for %s", name, key)
        try:
            hook(self.context)
        except DeployError:
            raise
        except Exception as exc:
            raise HookError(key, name, str(exc)) from exc
