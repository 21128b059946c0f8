"""
Command runner base — the contract between steps and the OS.

Steps never call ``subprocess`` themselves; they hand an argument
list to a CommandRunner together with the run's ExecutionIdentity.
The runner decides which user the process runs as, which
environment it sees and where it starts.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from devbox.core.models.identity import ExecutionIdentity


@dataclass
class CommandResult:
    """Outcome of one external command."""

    argv: list[str] = field(default_factory=list)
    returncode: int = 0
    stdout: str = ""
    stderr: str = ""
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class CommandRunner(ABC):
    """Abstract base class for command execution.

    ``run`` raises CommandFailed on a non-zero exit when ``check`` is
    True (the default); with ``check=False`` the result is returned
    as-is for callers that probe state.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Runner identifier (e.g., 'subprocess', 'mock')."""

    @abstractmethod
    def run(
        self,
        identity: ExecutionIdentity,
        argv: Sequence[str],
        *,
        input: str | None = None,
        forward_env: Mapping[str, str] | None = None,
        as_root: bool = False,
        timeout: float | None = None,
        check: bool = True,
    ) -> CommandResult:
        """Run ``argv`` as the target user (or root when ``as_root``).

        Args:
            identity: The run's target identity.
            argv: Program and arguments; never a shell string.
            input: Text piped to stdin. The only channel for secrets.
            forward_env: Extra variables explicitly allowed through.
            as_root: Run with the process's own (root) identity.
            timeout: Seconds before giving up; None waits forever.
            check: Raise CommandFailed on a non-zero exit.
        """

    @abstractmethod
    def which(self, identity: ExecutionIdentity, binary: str) -> str | None:
        """Locate ``binary`` on the target user's effective PATH."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
