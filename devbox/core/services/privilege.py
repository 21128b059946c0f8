"""
Privilege context — resolve the target identity and act as it.

A run is either privileged (started through sudo, can install
system packages) or not (started by the target user, privileged
steps are skipped). Either way there is exactly one target user
whose home receives all configuration, and it is resolved once.

Elevated execution without an attributable invoking user is a hard
error: guessing "root" would write configuration into the wrong
home directory.
"""

from __future__ import annotations

import logging
import os
import pwd
from collections.abc import Callable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import Any, TypeVar

from devbox.core.errors import AmbiguousPrivilege
from devbox.core.models.identity import ExecutionIdentity

logger = logging.getLogger(__name__)

T = TypeVar("T")

ROOT_UID = 0

SYSTEM_PATH = (
    "/usr/local/sbin",
    "/usr/local/bin",
    "/usr/sbin",
    "/usr/bin",
    "/sbin",
    "/bin",
)

# Per-user install locations, relative to the target home
USER_PATH = (".bun/bin", ".local/bin")


def build_path(home: Path, extra: Sequence[str] = ()) -> tuple[str, ...]:
    """Effective PATH for the target user: user tools first, then system."""
    segments = [str(home / rel) for rel in USER_PATH]
    for item in extra:
        segment = item.replace("~", str(home), 1) if item.startswith("~") else item
        if segment not in segments:
            segments.append(segment)
    segments.extend(p for p in SYSTEM_PATH if p not in segments)
    return tuple(segments)


def resolve_identity(
    euid: int | None = None,
    environ: Mapping[str, str] | None = None,
    *,
    getpwnam: Callable[[str], Any] = pwd.getpwnam,
    getpwuid: Callable[[int], Any] = pwd.getpwuid,
) -> ExecutionIdentity:
    """Determine who this run configures the machine for.

    Args:
        euid: Effective uid of the process (default: ``os.geteuid()``).
        environ: Environment to read ``SUDO_USER`` from (default: ``os.environ``).
        getpwnam / getpwuid: passwd database lookups, injectable for tests.

    Raises:
        AmbiguousPrivilege: Elevated without a resolvable invoking user.
    """
    euid = os.geteuid() if euid is None else euid
    environ = os.environ if environ is None else environ

    if euid == ROOT_UID:
        sudo_user = (environ.get("SUDO_USER") or "").strip()
        if not sudo_user or sudo_user == "root":
            raise AmbiguousPrivilege(
                "Running as root but the invoking user is unknown. "
                "Run through sudo from your own account (sudo devbox), "
                "or run devbox unprivileged to skip system packages."
            )
        try:
            entry = getpwnam(sudo_user)
        except KeyError:
            raise AmbiguousPrivilege(
                f"SUDO_USER '{sudo_user}' does not exist in the passwd database"
            ) from None
        privileged = True
    else:
        try:
            entry = getpwuid(euid)
        except KeyError:
            raise AmbiguousPrivilege(f"No passwd entry for uid {euid}") from None
        privileged = False

    home = Path(entry.pw_dir)
    identity = ExecutionIdentity(
        is_privileged=privileged,
        target_user=entry.pw_name,
        target_home=home,
        uid=entry.pw_uid,
        gid=entry.pw_gid,
        effective_path=build_path(home),
    )

    if privileged:
        logger.info("Running as root for user %s (home: %s)", identity.target_user, home)
    else:
        logger.info(
            "Running unprivileged as %s — system-level steps will be skipped",
            identity.target_user,
        )
    return identity


def with_extra_path(identity: ExecutionIdentity, extra: Sequence[str]) -> ExecutionIdentity:
    """Same identity with configured PATH segments added."""
    if not extra:
        return identity
    return identity.model_copy(
        update={"effective_path": build_path(identity.target_home, extra)}
    )


def minimal_environment(
    identity: ExecutionIdentity,
    forward: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Environment for commands run on behalf of the target user.

    Only these variables cross the boundary; nothing from the
    caller's own environment leaks through unless forwarded.
    """
    env = {
        "HOME": str(identity.target_home),
        "USER": identity.target_user,
        "LOGNAME": identity.target_user,
        "PATH": identity.path_env,
        "LANG": "C.UTF-8",
    }
    if forward:
        env.update(forward)
    return env


@contextmanager
def impersonate(identity: ExecutionIdentity) -> Iterator[None]:
    """Switch effective uid/gid to the target user and cd to their home.

    When the run is not privileged the process already is the target
    user, so only the working directory changes.
    """
    old_cwd = os.getcwd()
    switch = identity.is_privileged and os.geteuid() == ROOT_UID
    old_groups: list[int] | None = None
    old_egid: int | None = None
    euid_changed = False

    try:
        if switch:
            groups = os.getgroups()
            os.setgroups(os.getgrouplist(identity.target_user, identity.gid))
            old_groups = groups
            egid = os.getegid()
            os.setegid(identity.gid)
            old_egid = egid
            os.seteuid(identity.uid)
            euid_changed = True
        os.chdir(identity.target_home)
        yield
    finally:
        os.chdir(old_cwd)
        # euid back to root before touching groups
        if euid_changed:
            os.seteuid(ROOT_UID)
        if old_egid is not None:
            os.setegid(old_egid)
        if old_groups is not None:
            os.setgroups(old_groups)


def run_as(identity: ExecutionIdentity, action: Callable[[], T]) -> T:
    """Run a Python callable as the target user."""
    with impersonate(identity):
        return action()
