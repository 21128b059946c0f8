"""
Shell profile blocks — insert a named block once, never twice.

A block is delimited by marker comments::

    # >>> devbox:bun >>>
    export BUN_INSTALL="$HOME/.bun"
    # <<< devbox:bun <<<

If the opening marker is already present the profile is left
untouched, even if the user edited the block since.
"""

from __future__ import annotations

import logging
from pathlib import Path

from devbox.core.errors import WriteFailure
from devbox.core.persistence.atomic import atomic_write_text

logger = logging.getLogger(__name__)


def begin_marker(marker: str) -> str:
    return f"# >>> devbox:{marker} >>>"


def end_marker(marker: str) -> str:
    return f"# <<< devbox:{marker} <<<"


def render_block(marker: str, lines: list[str]) -> str:
    body = "\n".join(lines)
    return f"{begin_marker(marker)}\n{body}\n{end_marker(marker)}\n"


def has_block(text: str, marker: str) -> bool:
    begin = begin_marker(marker)
    return any(line.strip() == begin for line in text.splitlines())


def ensure_profile_block(path: Path, marker: str, lines: list[str]) -> bool:
    """Append the block to ``path`` unless its marker is already there.

    Returns:
        True if the profile was modified.
    """
    try:
        text = path.read_text(encoding="utf-8") if path.exists() else ""
    except OSError as e:
        raise WriteFailure(path, e) from e

    if has_block(text, marker):
        logger.debug("Profile block '%s' already in %s", marker, path)
        return False

    if text and not text.endswith("\n"):
        text += "\n"
    separator = "\n" if text else ""
    mode = path.stat().st_mode & 0o777 if path.exists() else 0o644

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        atomic_write_text(path, text + separator + render_block(marker, lines), mode=mode)
    except OSError as e:
        raise WriteFailure(path, e) from e

    logger.info("Added '%s' block to %s", marker, path)
    return True
