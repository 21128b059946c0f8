"""
Configuration loader — reads devbox.yml into a ProvisionConfig.

The file is optional. When none is found the stock defaults are
used; when one is found it must be a valid YAML mapping that
passes the pydantic schema, otherwise ConfigError is raised before
anything on the machine is touched.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import ValidationError

from devbox.core.errors import ConfigError
from devbox.core.models.provision import ProvisionConfig

logger = logging.getLogger(__name__)

CONFIG_FILE = "devbox.yml"


def candidate_paths(cwd: Path | None = None, home: Path | None = None) -> list[Path]:
    """Locations searched for devbox.yml, in priority order."""
    cwd = cwd or Path.cwd()
    home = home or Path.home()
    return [cwd / CONFIG_FILE, home / ".config" / "devbox" / CONFIG_FILE]


def find_config_file(cwd: Path | None = None, home: Path | None = None) -> Path | None:
    """Return the first existing devbox.yml, or None."""
    for candidate in candidate_paths(cwd, home):
        if candidate.is_file():
            return candidate
    return None


def load_config(
    path: Path | None = None,
    *,
    search: bool = True,
    home: Path | None = None,
) -> ProvisionConfig:
    """Load and validate the provisioning configuration.

    Args:
        path: Explicit path to devbox.yml. Must exist if given.
        search: When no path is given, look in the default locations.
        home: Home directory to search (the target user's, not the
            process's own; they differ under sudo).

    Returns:
        Validated ProvisionConfig (defaults if no file was found).

    Raises:
        ConfigError: If the file is missing (explicit path) or invalid.
    """
    if path is None and search:
        path = find_config_file(home=home)

    if path is None:
        logger.debug("No %s found — using built-in defaults", CONFIG_FILE)
        return ProvisionConfig()

    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    logger.debug("Loading provisioning config from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    try:
        config = ProvisionConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {path}: {e}") from e

    logger.info("Loaded %s (%d packages)", path, len(config.packages))
    return config
