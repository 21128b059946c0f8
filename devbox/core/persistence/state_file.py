"""
State file persistence — read/write the RunState record.

State is stored as JSON in ``~/.local/state/devbox/state.json`` of
the target user. Writes are atomic so an interrupted save never
corrupts the previous record.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from pydantic import ValidationError

from devbox.core.models.identity import ExecutionIdentity
from devbox.core.models.state import RunState
from devbox.core.persistence.atomic import atomic_write_text

logger = logging.getLogger(__name__)

DEFAULT_STATE_DIR = ".local/state/devbox"
DEFAULT_STATE_FILE = "state.json"


def default_state_path(identity: ExecutionIdentity) -> Path:
    """State file location for the target user."""
    return identity.target_home / DEFAULT_STATE_DIR / DEFAULT_STATE_FILE


def load_state(path: Path) -> RunState:
    """Load the run state, or a fresh one if absent or unreadable.

    The state file is our own bookkeeping and fully reproducible,
    so a damaged one is replaced rather than reported.
    """
    if not path.is_file():
        logger.debug("No state file at %s — starting fresh", path)
        return RunState()

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        state = RunState.model_validate(data)
        logger.debug("Loaded state from %s (updated_at=%s)", path, state.updated_at)
        return state
    except (OSError, json.JSONDecodeError, ValidationError) as e:
        logger.warning("Unreadable state file %s: %s — starting fresh", path, e)
        return RunState()


def save_state(state: RunState, path: Path) -> None:
    """Save the run state (atomic write)."""
    state.touch()
    path.parent.mkdir(parents=True, exist_ok=True)

    data = state.model_dump(mode="json")
    content = json.dumps(data, indent=2, ensure_ascii=False) + "\n"

    try:
        atomic_write_text(path, content, mode=0o644)
    except OSError as e:
        logger.error("Failed to save state to %s: %s", path, e)
        raise
    logger.debug("State saved to %s", path)
