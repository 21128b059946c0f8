"""
Step runner — the provisioning loop.

Runs registered steps strictly in order, one at a time. The runner
owns a cursor (ordinal of the step being attempted) and a
``completed`` flag that only turns True after the last step
succeeds. Any failure, exception or interrupt stops the run at the
cursor and surfaces as StepFailed naming the step.

Flow:
    register steps → run(identity) → for each: cursor := N → action → receipt
"""

from __future__ import annotations

import logging
import signal
import time
import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime

from devbox.core.errors import RunInterrupted, StepFailed
from devbox.core.models.identity import ExecutionIdentity
from devbox.core.models.receipt import Receipt
from devbox.core.models.state import RunRecord, StepRecord

logger = logging.getLogger(__name__)

StepAction = Callable[[ExecutionIdentity], "Receipt | None"]


@dataclass(frozen=True)
class Step:
    """One named, ordered unit of provisioning work."""

    ordinal: int
    name: str
    description: str
    action: StepAction = field(repr=False, compare=False)
    privileged: bool = False


@dataclass
class RunReport:
    """Receipts of one run, in step order."""

    run_id: str = ""
    target_user: str = ""
    started_at: str = ""
    receipts: list[Receipt] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.receipts)

    @property
    def changed(self) -> int:
        return sum(1 for r in self.receipts if r.changed)

    @property
    def skipped(self) -> int:
        return sum(1 for r in self.receipts if r.status == "skipped")

    @property
    def failed(self) -> int:
        return sum(1 for r in self.receipts if r.failed)

    def to_dict(self) -> dict:
        return {
            "run_id": self.run_id,
            "target_user": self.target_user,
            "total": self.total,
            "changed": self.changed,
            "skipped": self.skipped,
            "failed": self.failed,
            "receipts": [r.model_dump(mode="json") for r in self.receipts],
        }


def generate_run_id() -> str:
    """Generate a unique run ID."""
    now = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
    return f"run-{now}-{uuid.uuid4().hex[:6]}"


class StepRunner:
    """Sequence registered steps and attribute failures to them."""

    def __init__(self) -> None:
        self._steps: list[Step] = []
        self.cursor = 0
        self.completed = False
        self.error: StepFailed | None = None
        self.report: RunReport | None = None

    @property
    def steps(self) -> tuple[Step, ...]:
        return tuple(self._steps)

    @property
    def started(self) -> bool:
        return self.report is not None

    def register(
        self,
        name: str,
        description: str,
        action: StepAction,
        *,
        privileged: bool = False,
    ) -> Step:
        """Append a step; its ordinal is its 1-based registration position."""
        if any(s.name == name for s in self._steps):
            raise ValueError(f"Duplicate step name: {name}")
        step = Step(
            ordinal=len(self._steps) + 1,
            name=name,
            description=description,
            action=action,
            privileged=privileged,
        )
        self._steps.append(step)
        return step

    def step_at(self, ordinal: int) -> Step | None:
        if 1 <= ordinal <= len(self._steps):
            return self._steps[ordinal - 1]
        return None

    def _fail(self, error: StepFailed) -> StepFailed:
        self.completed = False
        self.error = error
        logger.error("✗ %s", error)
        return error

    def run(self, identity: ExecutionIdentity) -> RunReport:
        """Execute every step in order.

        Raises:
            StepFailed: The first step that failed, with its ordinal.
            RunInterrupted: A signal or Ctrl-C arrived mid-run.
        """
        self.cursor = 0
        self.completed = False
        self.error = None
        report = RunReport(
            run_id=generate_run_id(),
            target_user=identity.target_user,
            started_at=datetime.now(UTC).isoformat(),
        )
        self.report = report
        total = len(self._steps)

        try:
            for step in self._steps:
                self.cursor = step.ordinal
                logger.info("[%d/%d] %s", step.ordinal, total, step.description)

                if step.privileged and not identity.is_privileged:
                    logger.info("⊘ %s skipped — requires root", step.name)
                    report.receipts.append(
                        Receipt.skip("requires root; run through sudo to apply", step=step.name)
                    )
                    continue

                start = time.monotonic()
                try:
                    outcome = step.action(identity)
                except Exception as e:
                    report.receipts.append(Receipt.failure(str(e), step=step.name))
                    raise self._fail(StepFailed(step.ordinal, step.description, e)) from e

                receipt = (outcome or Receipt.success()).model_copy(
                    update={
                        "step": step.name,
                        "duration_ms": int((time.monotonic() - start) * 1000),
                    }
                )
                report.receipts.append(receipt)

                if receipt.failed:
                    raise self._fail(
                        StepFailed(
                            step.ordinal,
                            step.description,
                            receipt.error or "step reported failure",
                        )
                    )

                marker = "✓" if receipt.changed else "="
                logger.info("%s %s", marker, step.name)
        except KeyboardInterrupt as e:
            current = self.step_at(self.cursor)
            description = current.description if current else "before first step"
            raise self._fail(RunInterrupted(self.cursor, description, "interrupted")) from e

        self.completed = True
        logger.info("All %d steps completed (%d changed)", total, report.changed)
        return report

    def to_record(self) -> RunRecord:
        """Snapshot of the run for the state file."""
        report = self.report or RunReport()
        current = self.step_at(self.cursor)
        if self.completed:
            status = "ok"
        elif isinstance(self.error, RunInterrupted):
            status = "interrupted"
        else:
            status = "failed"
        by_name = {s.name: s for s in self._steps}
        return RunRecord(
            run_id=report.run_id,
            target_user=report.target_user,
            started_at=report.started_at,
            ended_at=datetime.now(UTC).isoformat(),
            status=status,
            cursor=self.cursor,
            completed=self.completed,
            failed_step=None if self.completed or current is None else current.description,
            error=None if self.error is None else str(self.error.cause),
            steps=[
                StepRecord(
                    ordinal=by_name[r.step].ordinal if r.step in by_name else 0,
                    name=r.step,
                    status=r.status,
                    changed=r.changed,
                )
                for r in report.receipts
            ],
        )


@contextmanager
def handle_signals(*signums: int) -> Iterator[None]:
    """Turn termination signals into KeyboardInterrupt for the duration.

    The runner already maps KeyboardInterrupt to RunInterrupted, so a
    ``kill`` is reported exactly like Ctrl-C: at the current cursor.
    """
    signums = signums or (signal.SIGTERM, signal.SIGHUP)

    def _raise(signum: int, _frame: object) -> None:
        raise KeyboardInterrupt(f"received {signal.Signals(signum).name}")

    previous = {s: signal.signal(s, _raise) for s in signums}
    try:
        yield
    finally:
        for s, handler in previous.items():
            signal.signal(s, handler)
