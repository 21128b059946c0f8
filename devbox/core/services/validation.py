"""
Settings validation — runs before any step touches the machine.

Every missing name is reported in one go so the user fixes them
all in a single pass instead of discovering them one failed run
at a time.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from devbox.core.errors import MissingSetting
from devbox.core.models.settings import EnvironmentSpec, ValidatedSettings

logger = logging.getLogger(__name__)


def find_missing(spec: EnvironmentSpec, lookup: Callable[[str], str | None]) -> list[str]:
    """Return every required name without a non-blank value, in order."""
    missing: list[str] = []
    for name in spec.required:
        value = lookup(name)
        if value is None or not value.strip():
            missing.append(name)
    return missing


def parse_secondary(value: str | None) -> list[str]:
    """Expand a comma-delimited credential list, dropping blanks."""
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def validate_settings(
    spec: EnvironmentSpec,
    lookup: Callable[[str], str | None],
) -> ValidatedSettings:
    """Check the required settings and collect the secondary list.

    Raises:
        MissingSetting: Listing every absent name.
    """
    missing = find_missing(spec, lookup)
    if missing:
        raise MissingSetting(missing)

    values = {name: lookup(name) or "" for name in spec.required}

    secondary: list[str] = []
    if spec.secondary_list:
        secondary = parse_secondary(lookup(spec.secondary_list))
        logger.info(
            "Found %d secondary credential(s) in %s",
            len(secondary),
            spec.secondary_list,
        )

    logger.info("All %d required settings are present", len(spec.required))
    return ValidatedSettings(values=values, secondary=tuple(secondary))
