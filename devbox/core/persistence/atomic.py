"""
Atomic file replacement.

Write to a temp file in the target's directory, fsync, then rename
over the target. A crash mid-write leaves either the old file or
the new one, never a truncated mix.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

logger = logging.getLogger(__name__)


def atomic_write_text(path: Path, content: str, mode: int = 0o600) -> None:
    """Replace ``path`` with ``content`` atomically.

    The parent directory must already exist. The new file gets
    ``mode`` before it becomes visible under its final name. A
    symlinked ``path`` is followed: the link target is replaced and
    the link itself stays in place.
    """
    path = Path(os.path.realpath(path))
    fd, tmp_name = tempfile.mkstemp(
        dir=path.parent,
        prefix=f".{path.name}.",
        suffix=".tmp",
    )
    tmp = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(content)
            fh.flush()
            os.fsync(fh.fileno())
        os.chmod(tmp, mode)
        os.replace(tmp, path)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise
    logger.debug("Wrote %s (%d bytes)", path, len(content))
