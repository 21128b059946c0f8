"""
CredentialRecord — one stored (or in-memory) credential slot.

Slot 1 is the primary credential; it lives only in memory and is
never written to disk. Slots 2+ are persisted one file per slot.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field

PRIMARY_SLOT = 1


class CredentialRecord(BaseModel):
    """A credential slot and where its secret is kept."""

    slot: int = Field(ge=1)
    storage_path: Path | None = None
    secret: str = Field(default="", repr=False, exclude=True)

    @property
    def is_primary(self) -> bool:
        return self.slot == PRIMARY_SLOT

    @property
    def masked(self) -> str:
        """Secret with all but the edges hidden, for display."""
        if not self.secret:
            return "(empty)"
        if len(self.secret) <= 8:
            return "****"
        return self.secret[:4] + "****" + self.secret[-2:]
