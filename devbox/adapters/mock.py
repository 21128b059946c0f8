"""
Mock command runner — test double for everything that shells out.

Records every call and answers from canned responses keyed by an
argv prefix. Unmatched commands succeed with empty output.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from devbox.adapters.base import CommandResult, CommandRunner
from devbox.core.errors import CommandFailed, ProvisionError
from devbox.core.models.identity import ExecutionIdentity


@dataclass
class MockCall:
    """One recorded invocation."""

    argv: list[str]
    input: str | None = None
    forward_env: dict[str, str] = field(default_factory=dict)
    as_root: bool = False
    user: str = ""


class MockCommandRunner(CommandRunner):
    """Universal mock runner for testing steps and services."""

    def __init__(self, available: Sequence[str] = ()):
        self._responses: dict[tuple[str, ...], CommandResult] = {}
        self._available: set[str] = set(available)
        self._call_log: list[MockCall] = []

    @property
    def name(self) -> str:
        return "mock"

    @property
    def call_log(self) -> list[MockCall]:
        """All calls this mock has received."""
        return self._call_log

    @property
    def call_count(self) -> int:
        return len(self._call_log)

    def calls_to(self, *prefix: str) -> list[MockCall]:
        """Calls whose argv starts with ``prefix``."""
        return [c for c in self._call_log if tuple(c.argv[: len(prefix)]) == prefix]

    def set_available(self, *binaries: str) -> None:
        """Make ``which`` find these binaries."""
        self._available.update(binaries)

    def set_response(
        self,
        prefix: Sequence[str],
        stdout: str = "",
        returncode: int = 0,
        stderr: str = "",
    ) -> None:
        """Answer commands starting with ``prefix``."""
        self._responses[tuple(prefix)] = CommandResult(
            argv=list(prefix), returncode=returncode, stdout=stdout, stderr=stderr
        )

    def set_failure(self, prefix: Sequence[str], stderr: str = "Mock failure") -> None:
        """Make commands starting with ``prefix`` exit with code 1."""
        self.set_response(prefix, returncode=1, stderr=stderr)

    def which(self, identity: ExecutionIdentity, binary: str) -> str | None:
        if binary in self._available:
            return str(identity.target_home / ".local" / "bin" / binary)
        return None

    def _match(self, argv: list[str]) -> CommandResult | None:
        best: tuple[str, ...] | None = None
        for prefix in self._responses:
            if tuple(argv[: len(prefix)]) == prefix and (best is None or len(prefix) > len(best)):
                best = prefix
        return self._responses[best] if best is not None else None

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
        argv = [str(a) for a in argv]
        if as_root and not identity.is_privileged:
            raise ProvisionError(f"'{argv[0]}' needs root but this run is unprivileged")

        self._call_log.append(
            MockCall(
                argv=argv,
                input=input,
                forward_env=dict(forward_env or {}),
                as_root=as_root,
                user="root" if as_root else identity.target_user,
            )
        )

        canned = self._match(argv)
        result = CommandResult(
            argv=argv,
            returncode=canned.returncode if canned else 0,
            stdout=canned.stdout if canned else "",
            stderr=canned.stderr if canned else "",
        )
        if check and not result.ok:
            raise CommandFailed(argv, result.returncode, result.stderr)
        return result
