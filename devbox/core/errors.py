"""
Error taxonomy — every failure the provisioner can report.

Core services raise these; only the CLI layer turns them into
messages and exit codes. Each error carries the context a user
needs to fix the problem without knowing the engine internals.
"""

from __future__ import annotations

from pathlib import Path


class ProvisionError(Exception):
    """Base class for all provisioning errors."""


class ConfigError(ProvisionError):
    """Raised when devbox.yml is unreadable or fails validation."""


class MissingSetting(ProvisionError):
    """One or more required settings are absent. Reported as a batch."""

    def __init__(self, names: list[str]):
        self.names = list(names)
        super().__init__(
            "Required settings are not set: " + ", ".join(self.names)
        )


class AmbiguousPrivilege(ProvisionError):
    """Running elevated without a resolvable target user."""


class CredentialNotFound(ProvisionError):
    """A credential slot was requested that has no stored secret."""

    def __init__(self, slot: int, path: Path | None = None):
        self.slot = slot
        self.path = path
        where = f" (expected {path})" if path else ""
        super().__init__(f"No credential stored for slot {slot}{where}")


class MalformedExistingDocument(ProvisionError):
    """An existing config document cannot be parsed or merged into."""

    def __init__(self, path: Path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(
            f"Refusing to overwrite {path}: {reason}. "
            "Fix or remove the file and re-run."
        )


class WriteFailure(ProvisionError):
    """Persisting a file failed (permissions, disk)."""

    def __init__(self, path: Path, cause: BaseException):
        self.path = path
        self.cause = cause
        super().__init__(f"Cannot write {path}: {cause}")


class CommandFailed(ProvisionError):
    """An external command exited non-zero or could not be started."""

    def __init__(self, argv: list[str], returncode: int | None, stderr: str = ""):
        self.argv = list(argv)
        self.returncode = returncode
        self.stderr = stderr
        if returncode is None:
            detail = "could not be started"
        else:
            detail = f"exited with code {returncode}"
        msg = f"Command '{self.argv[0]}' {detail}"
        if stderr:
            msg += f": {stderr}"
        super().__init__(msg)


class StepFailed(ProvisionError):
    """A step's action failed; halts the remaining sequence."""

    def __init__(self, ordinal: int, description: str, cause: BaseException | str):
        self.ordinal = ordinal
        self.description = description
        self.cause = cause
        super().__init__(f"Step {ordinal} ({description}) failed: {cause}")


class RunInterrupted(StepFailed):
    """The run was interrupted by a signal while a step was executing."""
