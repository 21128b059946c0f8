"""Adapters — how devbox reaches the operating system.

Public re-exports for convenient access.
"""

from devbox.adapters.base import CommandResult, CommandRunner
from devbox.adapters.command import SubprocessRunner
from devbox.adapters.mock import MockCall, MockCommandRunner

__all__ = [
    "CommandResult",
    "CommandRunner",
    "MockCall",
    "MockCommandRunner",
    "SubprocessRunner",
]
