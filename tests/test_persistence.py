"""
Tests for persistence — atomic writes and the run state file.
"""

import json
import stat
from pathlib import Path

import pytest

from devbox.core.models.state import RunRecord, RunState
from devbox.core.persistence.atomic import atomic_write_text
from devbox.core.persistence.state_file import default_state_path, load_state, save_state


class TestAtomicWrite:
    def test_writes_with_mode(self, tmp_path: Path):
        path = tmp_path / "secret.txt"
        atomic_write_text(path, "hello\n", mode=0o600)
        assert path.read_text() == "hello\n"
        assert stat.S_IMODE(path.stat().st_mode) == 0o600

    def test_replaces_existing(self, tmp_path: Path):
        path = tmp_path / "file.txt"
        path.write_text("old")
        atomic_write_text(path, "new")
        assert path.read_text() == "new"
        assert [p.name for p in tmp_path.iterdir()] == ["file.txt"]

    def test_missing_parent(self, tmp_path: Path):
        with pytest.raises(OSError):
            atomic_write_text(tmp_path / "nope" / "file.txt", "x")


class TestStateFile:
    """Tests for state file persistence."""

    def test_save_and_load(self, tmp_path: Path):
        """State roundtrips through save/load."""
        path = tmp_path / ".local" / "state" / "devbox" / "state.json"
        state = RunState()
        state.record_run(RunRecord(run_id="run-1", status="ok", cursor=8, completed=True))

        save_state(state, path)
        assert path.is_file()

        loaded = load_state(path)
        assert loaded.last_run.run_id == "run-1"
        assert loaded.last_run.completed is True
        assert loaded.runs_completed == 1

    def test_load_missing_returns_fresh(self, tmp_path: Path):
        """Missing state file returns a fresh state."""
        state = load_state(tmp_path / "nonexistent.json")
        assert state.runs_total == 0
        assert state.last_run.run_id == ""

    def test_load_corrupt_returns_fresh(self, tmp_path: Path):
        """Corrupt JSON returns a fresh state."""
        path = tmp_path / "corrupt.json"
        path.write_text("not json at all {{{")
        assert load_state(path).runs_total == 0

    def test_load_wrong_shape_returns_fresh(self, tmp_path: Path):
        path = tmp_path / "state.json"
        path.write_text(json.dumps({"runs_total": "many"}))
        assert load_state(path).runs_total == 0

    def test_record_run_counts(self):
        state = RunState()
        state.record_run(RunRecord(run_id="a", completed=False, status="failed"))
        state.record_run(RunRecord(run_id="b", completed=True, status="ok"))
        assert state.runs_total == 2
        assert state.runs_completed == 1
        assert state.last_run.run_id == "b"

    def test_default_path(self, identity):
        assert default_state_path(identity) == identity.target_home / ".local/state/devbox/state.json"


class TestAtomicWriteSymlink:
    def test_writes_through_link(self, tmp_path: Path):
        target = tmp_path / "real.txt"
        target.write_text("old")
        link = tmp_path / "link.txt"
        link.symlink_to(target)

        atomic_write_text(link, "new", mode=0o644)

        assert link.is_symlink()
        assert target.read_text() == "new"
