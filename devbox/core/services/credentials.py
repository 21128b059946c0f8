"""
Credential store — a primary token plus numbered secondary tokens.

Slot 1 is the primary token from the validated settings and stays
in memory only. Slots 2+ are written one file per slot under the
target user's config directory, readable by the owner alone. A
stored secret is never replaced: rotation means deleting the file
and re-running.

``activate`` switches the gh CLI to the token in a slot.
"""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Iterable
from pathlib import Path

from devbox.core.errors import CredentialNotFound, WriteFailure
from devbox.core.models.credential import PRIMARY_SLOT, CredentialRecord
from devbox.core.models.identity import ExecutionIdentity
from devbox.core.persistence.atomic import atomic_write_text
from devbox.core.services.gh_auth import GitHubAuthenticator

logger = logging.getLogger(__name__)

STORE_DIR = ".config/devbox/github-tokens"
DIR_MODE = 0o700
FILE_MODE = 0o600

_SLOT_FILE = re.compile(r"^token-(\d+)$")


def default_store_dir(identity: ExecutionIdentity) -> Path:
    """Credential directory for the target user."""
    return identity.target_home / STORE_DIR


class CredentialStore:
    """Persist and switch between GitHub tokens."""

    def __init__(
        self,
        directory: Path,
        primary: str = "",
        authenticator: GitHubAuthenticator | None = None,
    ):
        self.directory = directory
        self._primary = primary
        self.authenticator = authenticator

    def storage_path(self, slot: int) -> Path:
        return self.directory / f"token-{slot}"

    def _ensure_directory(self) -> None:
        self.directory.mkdir(mode=DIR_MODE, parents=True, exist_ok=True)
        os.chmod(self.directory, DIR_MODE)

    def store_secondary(self, slot: int, secret: str) -> bool:
        """Write ``secret`` to ``slot`` unless the slot already holds one.

        Returns:
            True if a new file was written, False if the slot was taken.
        """
        if slot <= PRIMARY_SLOT:
            raise ValueError(f"Secondary slots start at 2, got {slot}")
        if not secret:
            raise ValueError(f"Refusing to store an empty secret in slot {slot}")

        path = self.storage_path(slot)
        if path.exists():
            logger.info("Slot %d already stored at %s — leaving it as is", slot, path)
            return False

        try:
            self._ensure_directory()
            atomic_write_text(path, secret + "\n", mode=FILE_MODE)
        except OSError as e:
            raise WriteFailure(path, e) from e

        logger.info("Stored credential for slot %d", slot)
        return True

    def store_all(self, secrets: Iterable[str]) -> int:
        """Store an ordered list of secrets at slots 2, 3, ...

        Returns:
            Number of slots newly written.
        """
        written = 0
        for offset, secret in enumerate(secrets):
            if self.store_secondary(PRIMARY_SLOT + 1 + offset, secret):
                written += 1
        return written

    def list_slots(self) -> list[int]:
        """Slot 1 plus every stored secondary slot, ascending."""
        slots = {PRIMARY_SLOT}
        if self.directory.is_dir():
            for entry in self.directory.iterdir():
                m = _SLOT_FILE.match(entry.name)
                if m and entry.is_file() and int(m.group(1)) > PRIMARY_SLOT:
                    slots.add(int(m.group(1)))
        return sorted(slots)

    def read(self, slot: int) -> CredentialRecord:
        """Resolve the secret for a slot.

        Raises:
            CredentialNotFound: Slot 1 without a primary token, or a
                secondary slot with no file.
        """
        if slot == PRIMARY_SLOT:
            if not self._primary:
                raise CredentialNotFound(slot)
            return CredentialRecord(slot=slot, secret=self._primary)

        path = self.storage_path(slot)
        if slot < PRIMARY_SLOT or not path.is_file():
            raise CredentialNotFound(slot, path)
        secret = path.read_text(encoding="utf-8").strip()
        if not secret:
            raise CredentialNotFound(slot, path)
        return CredentialRecord(slot=slot, storage_path=path, secret=secret)

    def records(self) -> list[CredentialRecord]:
        """Every resolvable slot, for display."""
        found: list[CredentialRecord] = []
        for slot in self.list_slots():
            try:
                found.append(self.read(slot))
            except CredentialNotFound:
                found.append(CredentialRecord(slot=slot))
        return found

    def activate(self, slot: int) -> bool:
        """Switch gh to the credential in ``slot``.

        Returns:
            True if gh was re-authenticated, False if already active.
        """
        if self.authenticator is None:
            raise RuntimeError("CredentialStore has no authenticator configured")
        record = self.read(slot)
        logger.info("Activating credential slot %d", slot)
        return self.authenticator.login(record.secret)
