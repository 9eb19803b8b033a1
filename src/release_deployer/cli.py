"""Command-line interface for release-deployer."""

from __future__ import annotations

import argparse
from dataclasses import dataclass, replace
from typing import Callable, Dict, Optional

from . import __version__
from .config import StageConfig, load_stage_config
from .errors import DeployError
from .executor import RemoteExecutor
from .hooks import HookRegistry, load_extensions
from .phases import Deployer
from .releases import ReleaseManager, RunContext
from .utils.logging import get_logger, set_verbose

logger = get_logger(__name__)

COMMANDS: Dict[str, Callable[[Deployer], None]] = {
    "deploy": Deployer.deploy,
    "only:prepare": Deployer.prepare,
    "only:deliver": Deployer.deliver,
}


@dataclass
class CLIContext:
    """Context captured from CLI arguments."""

    config: StageConfig
    run: RunContext
    registry: HookRegistry


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="release-deployer",
        description="Build, ship and publish timestamped releases to a stage's servers.",
    )
    parser.add_argument(
        "-v", "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "--config-dir",
        type=str,
        default=None,
        help="Directory holding config.json, stages/ and hooks.py (default: ./deploy)",
    )
    parser.add_argument(
        "--max-workers",
        type=int,
        default=None,
        help="Hosts processed concurrently (default: 1, one host at a time)",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Log command output and hook lookups",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)
    descriptions = {
        "deploy": "Run prepare then deliver",
        "only:prepare": "Stage artifacts and images locally",
        "only:deliver": "Ship the prepared release to the servers and publish it",
    }
    for name, help_text in descriptions.items():
        command_parser = subparsers.add_parser(name, help=help_text)
        command_parser.add_argument("stage", help="Stage name, e.g. staging or production")
        command_parser.add_argument("version", help="Version being deployed")

    return parser


def _build_context(args: argparse.Namespace) -> CLIContext:
    config = load_stage_config(args.stage, args.config_dir)
    if args.max_workers is not None:
        if args.max_workers < 1:
            raise DeployError("--max-workers must be >= 1")
        config = replace(config, max_workers=args.max_workers)
    run = ReleaseManager.establish_release(config, args.version)
    registry = HookRegistry()
    load_extensions(registry, config.hooks_file)
    return CLIContext(config=config, run=run, registry=registry)


def dispatch_command(args: argparse.Namespace) -> int:
    context = _build_context(args)
    deployer = Deployer(
        context.config,
        context.run,
        RemoteExecutor(context.config),
        context.registry,
    )
    COMMANDS[args.command](deployer)
    return 0


def run_cli(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    set_verbose(args.verbose)
    try:
        return dispatch_command(args)
    except DeployError as exc:
        logger.error("❌ %s", exc)
        return 1
    except KeyboardInterrupt:
        logger.error("Interrupted")
        return 130
