"""Provisioning steps and their registration."""

from devbox.core.steps.provision import (
    ProvisionContext,
    build_runner,
    environment_spec,
)

__all__ = [
    "ProvisionContext",
    "build_runner",
    "environment_spec",
]
