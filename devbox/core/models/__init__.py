"""
Domain models — Pydantic types for the provisioner.

All models are re-exported here for convenient access:

    from devbox.core.models import ExecutionIdentity, Receipt, ConfigPatch
"""

from devbox.core.models.credential import PRIMARY_SLOT, CredentialRecord
from devbox.core.models.identity import ExecutionIdentity
from devbox.core.models.patch import ArrayUpsert, ConfigPatch
from devbox.core.models.provision import (
    FactoryConfig,
    GitConfig,
    GitHubConfig,
    ModelEntry,
    ProvisionConfig,
    SettingsSpec,
    ToolInstall,
)
from devbox.core.models.receipt import Receipt
from devbox.core.models.settings import EnvironmentSpec, ValidatedSettings
from devbox.core.models.state import RunRecord, RunState, StepRecord

__all__ = [
    # credential.py
    "CredentialRecord",
    "PRIMARY_SLOT",
    # identity.py
    "ExecutionIdentity",
    # patch.py
    "ArrayUpsert",
    "ConfigPatch",
    # provision.py
    "FactoryConfig",
    "GitConfig",
    "GitHubConfig",
    "ModelEntry",
    "ProvisionConfig",
    "SettingsSpec",
    "ToolInstall",
    # receipt.py
    "Receipt",
    # settings.py
    "EnvironmentSpec",
    "ValidatedSettings",
    # state.py
    "RunRecord",
    "RunState",
    "StepRecord",
]
