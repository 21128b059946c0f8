"""
Provision use case — from CLI intent to a provisioned machine.

Preparation (resolve identity, load config, validate settings) has
no side effects on the machine; any problem there aborts before the
first step. Only then are the steps built and run.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from devbox.adapters.base import CommandRunner
from devbox.adapters.command import SubprocessRunner
from devbox.core.config.env_file import load_settings, lookup_from
from devbox.core.config.loader import load_config
from devbox.core.engine.observer import RunObserver
from devbox.core.engine.runner import RunReport, StepRunner, handle_signals
from devbox.core.models.identity import ExecutionIdentity
from devbox.core.models.provision import ProvisionConfig
from devbox.core.models.settings import ValidatedSettings
from devbox.core.observability.logging_config import register_secret
from devbox.core.services.privilege import resolve_identity, with_extra_path
from devbox.core.services.validation import validate_settings
from devbox.core.steps.provision import ProvisionContext, build_runner, environment_spec

logger = logging.getLogger(__name__)

_SECRET_NAME = re.compile(r"TOKEN|KEY|SECRET|PASSWORD", re.IGNORECASE)


@dataclass
class Preparation:
    """Validated inputs for a run."""

    config: ProvisionConfig
    settings: ValidatedSettings
    identity: ExecutionIdentity
    context: ProvisionContext
    runner: StepRunner


@dataclass
class ProvisionResult:
    """What a finished (or aborted) run looked like."""

    report: RunReport | None = None
    completed: bool = False
    cursor: int = 0
    steps: list[str] = field(default_factory=list)


def prepare(
    config_path: Path | None = None,
    env_file: Path | None = None,
    *,
    environ: Mapping[str, str] | None = None,
    euid: int | None = None,
    commands: CommandRunner | None = None,
    identity: ExecutionIdentity | None = None,
) -> Preparation:
    """Resolve, load and validate everything a run needs.

    The identity comes first: devbox.yml is searched for in the
    target user's home, which under sudo is not the process's own.
    ``identity`` may be passed in to skip resolution.

    Raises:
        ConfigError, MissingSetting, AmbiguousPrivilege
    """
    if identity is None:
        identity = resolve_identity(euid, environ)
    config = load_config(config_path, home=identity.target_home)
    identity = with_extra_path(identity, config.extra_path)

    values = load_settings(env_file, environ)
    settings = validate_settings(environment_spec(config), lookup_from(values))
    for name, value in settings.values.items():
        if _SECRET_NAME.search(name):
            register_secret(value)
    for secret in settings.secondary:
        register_secret(secret)

    context = ProvisionContext(
        config=config,
        settings=settings,
        commands=commands or SubprocessRunner(),
    )
    return Preparation(
        config=config,
        settings=settings,
        identity=identity,
        context=context,
        runner=build_runner(context),
    )


def provision(prep: Preparation, state_path: Path | None = None) -> ProvisionResult:
    """Run every step; the exit observer records the outcome either way.

    Raises:
        StepFailed: First failing step (RunInterrupted on signals).
    """
    observer = RunObserver(prep.runner, prep.identity, state_path).install()
    try:
        with handle_signals():
            report = prep.runner.run(prep.identity)
    finally:
        observer.finalize()

    return ProvisionResult(
        report=report,
        completed=prep.runner.completed,
        cursor=prep.runner.cursor,
        steps=[s.name for s in prep.runner.steps],
    )
