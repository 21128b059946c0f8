"""
Exit observer — record how the run ended, whatever the ending.

Called from the CLI's ``finally`` and registered with ``atexit`` as
a backstop, it persists the runner's cursor and ``completed`` flag
to the state file. It fires at most once.
"""

from __future__ import annotations

import atexit
import logging
from pathlib import Path

from devbox.core.engine.runner import StepRunner
from devbox.core.models.identity import ExecutionIdentity
from devbox.core.models.state import RunRecord
from devbox.core.persistence.state_file import default_state_path, load_state, save_state
from devbox.core.services.privilege import run_as

logger = logging.getLogger(__name__)


class RunObserver:
    """Persist the final RunRecord of a StepRunner."""

    def __init__(
        self,
        runner: StepRunner,
        identity: ExecutionIdentity,
        state_path: Path | None = None,
    ):
        self.runner = runner
        self.identity = identity
        self.state_path = state_path or default_state_path(identity)
        self.record: RunRecord | None = None

    def install(self) -> RunObserver:
        atexit.register(self.finalize)
        return self

    def finalize(self) -> RunRecord | None:
        """Write the run record once. Never raises."""
        if self.record is not None or not self.runner.started:
            return self.record
        atexit.unregister(self.finalize)

        record = self.runner.to_record()
        self.record = record

        if not record.completed:
            logger.warning(
                "Provisioning aborted at step %d (%s)",
                record.cursor,
                record.failed_step or "unknown",
            )

        def _save() -> None:
            state = load_state(self.state_path)
            state.record_run(record)
            save_state(state, self.state_path)

        try:
            run_as(self.identity, _save)
        except OSError as e:
            logger.error("Could not record run state in %s: %s", self.state_path, e)
        return record
