"""
Engine settings.

Loaded from a YAML file ($RQST_CONFIG, else ~/.config/rqst/settings.yaml).
A missing file means defaults; a malformed one is a hard error.
"""

import logging
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path

import yaml

from . import validate

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "RQST_CONFIG"
DEFAULT_CONFIG_PATH = Path("~/.config/rqst/settings.yaml")


@dataclass(frozen=True)
class EngineSettings:
    """Knobs for one engine session."""
    origin_remote: str = "origin"
    upstream_remote: str = "upstream"  # Remote holding the reference branches
    main_branch: str = "main"
    meta_branch: str = "meta"  # Branch carrying rqst.yaml
    forge_owner: str | None = None  # Defaults to the owner in the origin URL
    gh_timeout: int = 30
    retry_attempts: int = 5
    retry_base_delay: float = 1.0
    retry_max_delay: float = 30.0
    subscriber_queue_size: int = 8
    poll_interval: int = 10
    copy_review_comments: bool = True  # From the quest author's reference PRs
    install_hooks: bool = True  # Run and enable the quest's .githooks

    def upstream_ref(self, branch: str) -> str:
        return f"{self.upstream_remote}/{branch}"


class ConfigError(Exception):
    """Settings file could not be parsed or validated."""
    pass


def config_path() -> Path:
    override = os.environ.get(CONFIG_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return DEFAULT_CONFIG_PATH.expanduser()


def load_settings(path: Path | None = None) -> EngineSettings:
    """Load settings from YAML, falling back to defaults when absent."""
    path = path or config_path()
    if not path.exists():
        logger.debug(f"[CONFIG] {path} not found, using defaults")
        return EngineSettings()

    try:
        data = yaml.safe_load(path.read_text()) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    try:
        validate.validate(data, "settings")
    except validate.ValidationError as e:
        raise ConfigError(str(e)) from e

    known = {f.name for f in fields(EngineSettings)}
    settings = replace(EngineSettings(), **{k: v for k, v in data.items() if k in known})
    logger.debug(f"[CONFIG] Loaded settings from {path}")
    return settings
