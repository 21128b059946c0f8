"""
Shared test fixtures and configuration.
"""

import os
import pwd
from pathlib import Path

import pytest

from devbox.adapters.mock import MockCommandRunner
from devbox.core.models.identity import ExecutionIdentity
from devbox.core.services.privilege import build_path

SETTINGS = {
    "GITHUB_TOKEN": "ghp_primarytoken0001",
    "FACTORY_API_KEY": "fk-factory-key-123",
    "ZAI_API_KEY": "zai-key-456789",
    "GIT_USER_NAME": "Ada Lovelace",
    "GIT_USER_EMAIL": "ada@example.com",
}


@pytest.fixture
def home(tmp_path: Path) -> Path:
    """An empty home directory for the target user."""
    path = tmp_path / "home"
    path.mkdir()
    return path


@pytest.fixture
def identity(home: Path) -> ExecutionIdentity:
    """Unprivileged identity whose home is a temp directory."""
    return ExecutionIdentity(
        is_privileged=False,
        target_user="dev",
        target_home=home,
        uid=os.getuid(),
        gid=os.getgid(),
        effective_path=build_path(home),
    )


@pytest.fixture
def privileged_identity(home: Path) -> ExecutionIdentity:
    """Privileged identity targeting the current OS user (so impersonation is a no-op)."""
    return ExecutionIdentity(
        is_privileged=True,
        target_user=pwd.getpwuid(os.getuid()).pw_name,
        target_home=home,
        uid=os.getuid(),
        gid=os.getgid(),
        effective_path=build_path(home),
    )


@pytest.fixture
def settings() -> dict[str, str]:
    """A complete set of required settings."""
    return dict(SETTINGS)


@pytest.fixture
def mock_runner() -> MockCommandRunner:
    return MockCommandRunner()


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    """An empty devbox.yml (all defaults)."""
    path = tmp_path / "devbox.yml"
    path.write_text("version: 1\n")
    return path
