"""
Settings source — process environment merged over an optional .env file.

The validator only ever sees a lookup function; this module is the
convenience that builds one for the CLI.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Mapping
from pathlib import Path

from devbox.core.errors import ConfigError

logger = logging.getLogger(__name__)

Lookup = Callable[[str], "str | None"]


def parse_env_file(path: Path) -> dict[str, str]:
    """Parse a .env file into a key/value dict.

    Handles:
    - KEY=value
    - KEY="value" / KEY='value'
    - export KEY=value
    - Comments (#) and empty lines

    Raises:
        ConfigError: The file exists but cannot be read as UTF-8 text.
    """
    result: dict[str, str] = {}
    if not path.is_file():
        return result

    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue

        if line.startswith("export "):
            line = line[7:].strip()

        if "=" not in line:
            continue

        key, _, value = line.partition("=")
        key = key.strip()
        value = value.strip()

        if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
            value = value[1:-1]

        result[key] = value

    return result


def load_settings(
    env_file: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Merge .env values under the process environment (environment wins)."""
    environ = os.environ if environ is None else environ
    merged: dict[str, str] = {}
    if env_file is not None:
        from_file = parse_env_file(env_file)
        if from_file:
            logger.info("Read %d settings from %s", len(from_file), env_file)
        merged.update(from_file)
    merged.update(environ)
    return merged


def lookup_from(mapping: Mapping[str, str]) -> Lookup:
    """Wrap a mapping as a name → value-or-None lookup."""
    return mapping.get
