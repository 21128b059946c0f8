"""
Subprocess runner — the single place where external commands start.

Security invariants:
- Commands are argument lists; no shell string is ever assembled
  from setting values.
- The child environment is built from scratch (HOME, USER, PATH...)
  plus explicitly forwarded variables; root's environment never
  leaks into user-scoped installs.
- Secrets are piped over stdin only, never placed in argv or env,
  and never logged.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import time
from collections.abc import Mapping, Sequence
from typing import Any

from devbox.adapters.base import CommandResult, CommandRunner
from devbox.core.errors import CommandFailed, ProvisionError
from devbox.core.models.identity import ExecutionIdentity
from devbox.core.services.privilege import ROOT_UID, SYSTEM_PATH, minimal_environment

logger = logging.getLogger(__name__)

# Keep error messages readable: only the tail of stderr is reported
_STDERR_TAIL = 2000


class SubprocessRunner(CommandRunner):
    """Run commands with ``subprocess.run`` under the target identity."""

    @property
    def name(self) -> str:
        return "subprocess"

    def which(self, identity: ExecutionIdentity, binary: str) -> str | None:
        return shutil.which(binary, path=identity.path_env)

    def _root_environment(self, forward: Mapping[str, str] | None) -> dict[str, str]:
        env = {
            "HOME": "/root",
            "USER": "root",
            "LOGNAME": "root",
            "PATH": ":".join(SYSTEM_PATH),
            "LANG": "C.UTF-8",
        }
        if forward:
            env.update(forward)
        return env

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
        kwargs: dict[str, Any] = {}

        if as_root:
            if not identity.is_privileged:
                raise ProvisionError(
                    f"'{argv[0]}' needs root but this run is unprivileged"
                )
            env = self._root_environment(forward_env)
            cwd = "/"
        else:
            env = minimal_environment(identity, forward_env)
            cwd = str(identity.target_home)
            if identity.is_privileged and os.geteuid() == ROOT_UID:
                kwargs["user"] = identity.uid
                kwargs["group"] = identity.gid
                kwargs["extra_groups"] = os.getgrouplist(identity.target_user, identity.gid)

        who = "root" if as_root else identity.target_user
        logger.debug("Executing as %s: %s (cwd=%s)", who, argv, cwd)
        start = time.monotonic()

        try:
            proc = subprocess.run(
                argv,
                input=input,
                capture_output=True,
                text=True,
                env=env,
                cwd=cwd,
                timeout=timeout,
                **kwargs,
            )
        except FileNotFoundError as e:
            raise CommandFailed(argv, None, f"not found: {e.filename or argv[0]}") from e
        except subprocess.TimeoutExpired as e:
            raise CommandFailed(argv, None, f"timed out after {timeout}s") from e
        except OSError as e:
            raise CommandFailed(argv, None, str(e)) from e

        result = CommandResult(
            argv=argv,
            returncode=proc.returncode,
            stdout=proc.stdout or "",
            stderr=proc.stderr or "",
            duration_ms=int((time.monotonic() - start) * 1000),
        )
        logger.debug("%s → exit %d in %dms", argv[0], result.returncode, result.duration_ms)

        if check and not result.ok:
            raise CommandFailed(argv, result.returncode, result.stderr.strip()[-_STDERR_TAIL:])
        return result
