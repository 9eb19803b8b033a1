"""Local path constants for release-deployer.

Local staging data lives under the .release-deployer directory:
- .release-deployer/tmp/<stage>/<version>/          # per-run staging tree
- .release-deployer/tmp/<stage>/<version>/images/   # image archives
"""

from pathlib import Path

BASE_DIR = Path(".release-deployer")
TMP_DIR = BASE_DIR / "tmp"

DEFAULT_CONFIG_DIR = Path("deploy")
GLOBAL_CONFIG_NAME = "config.json"
STAGES_DIR_NAME = "stages"
HOOKS_FILE_NAME = "hooks.py"


def local_tmp_dir(stage: str, version: str) -> Path:
    """Staging tree for one stage/version pair."""
    return TMP_DIR / stage / version


def stage_config_file(config_dir: Path, stage: str) -> Path:
    return config_dir / STAGES_DIR_NAME / f"{stage}.json"


def default_code_dir(config_dir: Path, stage: str) -> Path:
    return config_dir / STAGES_DIR_NAME / stage / "code"
