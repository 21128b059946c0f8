"""
Tests for the step runner and the exit observer.
"""

import json
import os
import signal

import pytest

from devbox.core.engine.observer import RunObserver
from devbox.core.engine.runner import StepRunner, generate_run_id, handle_signals
from devbox.core.errors import CommandFailed, RunInterrupted, StepFailed
from devbox.core.models.receipt import Receipt


class Counter:
    """A step action that counts its invocations."""

    def __init__(self, outcome=None, error: BaseException | None = None):
        self.calls = 0
        self.outcome = outcome
        self.error = error

    def __call__(self, identity):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.outcome


def _runner(actions: list) -> StepRunner:
    runner = StepRunner()
    for i, action in enumerate(actions, start=1):
        runner.register(f"step-{i}", f"Doing thing {i}", action)
    return runner


class TestRegistration:
    def test_ordinals_follow_registration(self):
        runner = _runner([Counter(), Counter(), Counter()])
        assert [s.ordinal for s in runner.steps] == [1, 2, 3]
        assert runner.step_at(2).name == "step-2"
        assert runner.step_at(0) is None
        assert runner.step_at(4) is None

    def test_duplicate_names_rejected(self):
        runner = StepRunner()
        runner.register("git", "Configuring git", Counter())
        with pytest.raises(ValueError):
            runner.register("git", "Configuring git again", Counter())


class TestRun:
    """Ordering, fail-fast and completion."""

    def test_all_steps_succeed(self, identity):
        actions = [Counter(), Counter(Receipt.success("did it", changed=True)), Counter()]
        runner = _runner(actions)

        report = runner.run(identity)

        assert runner.completed is True
        assert runner.cursor == 3
        assert [a.calls for a in actions] == [1, 1, 1]
        assert [r.step for r in report.receipts] == ["step-1", "step-2", "step-3"]
        assert report.changed == 1

    def test_failure_halts_at_step(self, identity):
        actions = [Counter(), Counter(), Counter(),
                   Counter(error=CommandFailed(["bun"], 1, "boom")),
                   Counter(), Counter()]
        runner = _runner(actions)

        with pytest.raises(StepFailed) as exc:
            runner.run(identity)

        assert exc.value.ordinal == 4
        assert exc.value.description == "Doing thing 4"
        assert isinstance(exc.value.cause, CommandFailed)
        assert isinstance(exc.value.__cause__, CommandFailed)
        assert "Step 4 (Doing thing 4) failed" in str(exc.value)
        assert [a.calls for a in actions] == [1, 1, 1, 1, 0, 0]
        assert runner.completed is False
        assert runner.cursor == 4

    def test_failed_receipt_halts(self, identity):
        actions = [Counter(Receipt.failure("nope")), Counter()]
        runner = _runner(actions)

        with pytest.raises(StepFailed) as exc:
            runner.run(identity)

        assert exc.value.ordinal == 1
        assert exc.value.cause == "nope"
        assert actions[1].calls == 0
        assert runner.report.failed == 1

    def test_privileged_step_skipped_when_unprivileged(self, identity):
        root_action = Counter()
        runner = StepRunner()
        runner.register("packages", "Installing system packages", root_action, privileged=True)
        runner.register("git", "Configuring git", Counter())

        report = runner.run(identity)

        assert root_action.calls == 0
        assert report.receipts[0].status == "skipped"
        assert report.skipped == 1
        assert runner.completed is True

    def test_privileged_step_runs_when_privileged(self, privileged_identity):
        root_action = Counter()
        runner = StepRunner()
        runner.register("packages", "Installing system packages", root_action, privileged=True)
        runner.run(privileged_identity)
        assert root_action.calls == 1

    def test_rerun_resets_state(self, identity):
        flaky = Counter(error=RuntimeError("first time"))
        runner = _runner([flaky])
        with pytest.raises(StepFailed):
            runner.run(identity)

        flaky.error = None
        runner.run(identity)
        assert runner.completed is True
        assert runner.error is None


class TestInterrupt:
    def test_keyboard_interrupt_becomes_run_interrupted(self, identity):
        actions = [Counter(), Counter(error=KeyboardInterrupt()), Counter()]
        runner = _runner(actions)

        with pytest.raises(RunInterrupted) as exc:
            runner.run(identity)

        assert exc.value.ordinal == 2
        assert exc.value.description == "Doing thing 2"
        assert runner.completed is False
        assert actions[2].calls == 0

    def test_sigterm_during_step(self, identity):
        def terminate(identity):
            os.kill(os.getpid(), signal.SIGTERM)

        runner = StepRunner()
        runner.register("first", "First", Counter())
        runner.register("killed", "Killed here", terminate)

        with pytest.raises(RunInterrupted) as exc:
            with handle_signals():
                runner.run(identity)

        assert exc.value.ordinal == 2
        assert runner.to_record().status == "interrupted"

    def test_handlers_restored(self):
        before = signal.getsignal(signal.SIGTERM)
        with handle_signals():
            assert signal.getsignal(signal.SIGTERM) is not before
        assert signal.getsignal(signal.SIGTERM) is before


class TestRecord:
    def test_completed_record(self, identity):
        runner = _runner([Counter(), Counter()])
        runner.run(identity)
        record = runner.to_record()
        assert record.status == "ok"
        assert record.completed is True
        assert record.failed_step is None
        assert [s.ordinal for s in record.steps] == [1, 2]

    def test_failed_record(self, identity):
        runner = _runner([Counter(), Counter(error=RuntimeError("disk full"))])
        with pytest.raises(StepFailed):
            runner.run(identity)
        record = runner.to_record()
        assert record.status == "failed"
        assert record.cursor == 2
        assert record.failed_step == "Doing thing 2"
        assert record.error == "disk full"

    def test_run_id_format(self):
        assert generate_run_id().startswith("run-")
        assert generate_run_id() != generate_run_id()


class TestRunObserver:
    def test_not_started_writes_nothing(self, identity, tmp_path):
        path = tmp_path / "state.json"
        observer = RunObserver(_runner([Counter()]), identity, path)
        assert observer.finalize() is None
        assert not path.exists()

    def test_persists_aborted_run(self, identity, tmp_path):
        path = tmp_path / "state" / "state.json"
        runner = _runner([Counter(), Counter(error=RuntimeError("boom")), Counter()])
        observer = RunObserver(runner, identity, path).install()
        try:
            with pytest.raises(StepFailed):
                runner.run(identity)
        finally:
            observer.finalize()

        data = json.loads(path.read_text())
        assert data["last_run"]["completed"] is False
        assert data["last_run"]["cursor"] == 2
        assert data["runs_total"] == 1
        assert data["runs_completed"] == 0

    def test_fires_once(self, identity, tmp_path):
        path = tmp_path / "state.json"
        runner = _runner([Counter()])
        observer = RunObserver(runner, identity, path)
        runner.run(identity)

        first = observer.finalize()
        second = observer.finalize()

        assert first is second
        assert json.loads(path.read_text())["runs_total"] == 1

    def test_default_path_under_home(self, identity):
        observer = RunObserver(StepRunner(), identity)
        assert observer.state_path == identity.target_home / ".local/state/devbox/state.json"
