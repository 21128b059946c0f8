"""
Receipt model — the outcome of one step action.

Step actions return a Receipt (or None, meaning plain success).
The runner collects receipts into a RunReport and persists a
summary of them in the run state.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class Receipt(BaseModel):
    """Result of executing a step.

    ``changed`` is False when the step found the machine already in
    the desired state and did nothing.
    """

    step: str = ""
    status: Literal["ok", "skipped", "failed"] = "ok"

    started_at: str = Field(default_factory=_now_iso)
    ended_at: str = Field(default_factory=_now_iso)
    duration_ms: int = 0

    changed: bool = False
    output: str = ""
    error: str | None = None

    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        """Whether the step succeeded."""
        return self.status == "ok"

    @property
    def failed(self) -> bool:
        """Whether the step failed."""
        return self.status == "failed"

    @classmethod
    def success(cls, output: str = "", changed: bool = False, **kwargs: Any) -> Receipt:
        """Create a success receipt."""
        return cls(status="ok", output=output, changed=changed, **kwargs)

    @classmethod
    def failure(cls, error: str, **kwargs: Any) -> Receipt:
        """Create a failure receipt."""
        return cls(status="failed", error=error, **kwargs)

    @classmethod
    def skip(cls, reason: str = "", **kwargs: Any) -> Receipt:
        """Create a skip receipt."""
        return cls(status="skipped", output=reason, **kwargs)
