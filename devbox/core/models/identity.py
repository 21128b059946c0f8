"""
ExecutionIdentity — who the provisioning run configures the machine for.

Constructed exactly once at startup by
``devbox.core.services.privilege.resolve_identity`` and threaded
through every component. Nothing downstream reads the invoking
user, home or PATH from the process environment again.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict


class ExecutionIdentity(BaseModel):
    """Immutable identity for the whole run."""

    model_config = ConfigDict(frozen=True)

    is_privileged: bool
    target_user: str
    target_home: Path
    uid: int
    gid: int
    effective_path: tuple[str, ...] = ()

    @property
    def path_env(self) -> str:
        """The effective PATH as a single environment value."""
        return ":".join(self.effective_path)

    def home_path(self, *parts: str) -> Path:
        """Resolve a path below the target home directory."""
        return self.target_home.joinpath(*parts)
