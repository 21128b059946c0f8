"""
ConfigPatch — a desired partial state for a JSON config document.

Two kinds of edits:
    set      dotted key path -> value, overwriting only that key
    upserts  "array at path contains an element whose <key> equals X"
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, model_validator


class ArrayUpsert(BaseModel):
    """Ensure the array at ``path`` holds ``element``, matched on ``key``."""

    path: str
    key: str
    element: dict[str, Any]

    @model_validator(mode="after")
    def _element_has_key(self) -> ArrayUpsert:
        if self.key not in self.element:
            raise ValueError(
                f"Upsert element for '{self.path}' lacks identifying field '{self.key}'"
            )
        return self


class ConfigPatch(BaseModel):
    """A merge-patch applied by the config reconciler."""

    set: dict[str, Any] = Field(default_factory=dict)
    upserts: list[ArrayUpsert] = Field(default_factory=list)
