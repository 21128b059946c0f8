"""
RunState — the persisted record of the last provisioning run.

Serialized to ``~/.local/state/devbox/state.json`` by the exit
observer so that an aborted run can be told apart from one that
ran to the end, even after the process is gone.
"""

from __future__ import annotations

from datetime import UTC, datetime
from pydantic import BaseModel, Field


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class StepRecord(BaseModel):
    """Outcome of one step in the last run."""

    ordinal: int
    name: str
    status: str = ""  # ok, skipped, failed
    changed: bool = False


class RunRecord(BaseModel):
    """Summary of the last run."""

    run_id: str = ""
    target_user: str = ""
    started_at: str = ""
    ended_at: str = ""
    status: str = ""  # ok, failed, interrupted
    cursor: int = 0
    completed: bool = False
    failed_step: str | None = None
    error: str | None = None
    steps: list[StepRecord] = Field(default_factory=list)


class RunState(BaseModel):
    """Root state model — serialized to state.json."""

    schema_version: int = 1

    created_at: str = Field(default_factory=_now_iso)
    updated_at: str = Field(default_factory=_now_iso)

    last_run: RunRecord = Field(default_factory=RunRecord)
    runs_total: int = 0
    runs_completed: int = 0

    def touch(self) -> None:
        """Update the updated_at timestamp."""
        self.updated_at = _now_iso()

    def record_run(self, record: RunRecord) -> None:
        """Replace the last run and bump the counters."""
        self.last_run = record
        self.runs_total += 1
        if record.completed:
            self.runs_completed += 1
