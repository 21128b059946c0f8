"""
EnvironmentSpec — which settings a provisioning run requires.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_REQUIRED = (
    "GITHUB_TOKEN",
    "FACTORY_API_KEY",
    "ZAI_API_KEY",
    "GIT_USER_NAME",
    "GIT_USER_EMAIL",
)

DEFAULT_SECONDARY_LIST = "GITHUB_TOKENS_EXTRA"


class EnvironmentSpec(BaseModel):
    """Ordered required setting names plus the optional secondary list name."""

    model_config = ConfigDict(frozen=True)

    required: tuple[str, ...] = DEFAULT_REQUIRED
    secondary_list: str | None = DEFAULT_SECONDARY_LIST


class ValidatedSettings(BaseModel):
    """Settings that passed validation, ready for the steps to consume.

    ``values`` holds secrets: never log or dump this model.
    """

    model_config = ConfigDict(frozen=True)

    values: dict[str, str] = Field(default_factory=dict, repr=False)
    secondary: tuple[str, ...] = Field(default=(), repr=False)

    def __getitem__(self, name: str) -> str:
        return self.values[name]

    def get(self, name: str, default: str | None = None) -> str | None:
        return self.values.get(name, default)
