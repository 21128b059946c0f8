"""
Provisioning steps — the developer-machine setup, step by step.

Each step brings one aspect of the machine to the desired state and
reports whether it had to change anything. Every step is safe to
re-run: re-invoking devbox is how a machine gets updated.

Order:
    packages → git → bun → claude-cli → github → factory-cli
    → factory-config → workspace
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from functools import partial

from devbox.adapters.base import CommandRunner
from devbox.core.engine.runner import StepRunner
from devbox.core.errors import MissingSetting
from devbox.core.models.identity import ExecutionIdentity
from devbox.core.models.patch import ArrayUpsert, ConfigPatch
from devbox.core.models.provision import ProvisionConfig, ToolInstall
from devbox.core.models.receipt import Receipt
from devbox.core.models.settings import EnvironmentSpec, ValidatedSettings
from devbox.core.services.credentials import CredentialStore, default_store_dir
from devbox.core.services.gh_auth import GitHubAuthenticator
from devbox.core.services.privilege import run_as
from devbox.core.services.profile import ensure_profile_block
from devbox.core.services.reconcile import reconcile

logger = logging.getLogger(__name__)

_APT_SUMMARY = re.compile(r"(\d+) upgraded, (\d+) newly installed")


@dataclass
class ProvisionContext:
    """Everything the steps need besides the identity."""

    config: ProvisionConfig
    settings: ValidatedSettings
    commands: CommandRunner

    def setting(self, name: str) -> str:
        value = self.settings.get(name)
        if not value:
            raise MissingSetting([name])
        return value

    def credential_store(self, identity: ExecutionIdentity) -> CredentialStore:
        gh = self.config.github
        return CredentialStore(
            default_store_dir(identity),
            primary=self.setting(gh.token_setting),
            authenticator=GitHubAuthenticator(
                self.commands, identity, hostname=gh.hostname, git_protocol=gh.git_protocol
            ),
        )


def environment_spec(config: ProvisionConfig) -> EnvironmentSpec:
    """Required settings: the configured list plus every name a step reads."""
    names = list(config.settings.required)
    referenced = [
        config.git.name_setting,
        config.git.email_setting,
        config.github.token_setting,
        config.factory.api_key_setting,
        *(m.api_key_setting for m in config.factory.models),
    ]
    for name in referenced:
        if name not in names:
            names.append(name)
    return EnvironmentSpec(required=tuple(names), secondary_list=config.settings.secondary_list)


# ── Steps ───────────────────────────────────────────────────────


def install_packages(ctx: ProvisionContext, identity: ExecutionIdentity) -> Receipt:
    packages = ctx.config.packages
    if not packages:
        return Receipt.success("no packages configured")

    env = {"DEBIAN_FRONTEND": "noninteractive"}
    ctx.commands.run(identity, ["apt-get", "update", "-qq"], as_root=True, forward_env=env)
    logger.info("Installing: %s", " ".join(packages))
    r = ctx.commands.run(
        identity,
        ["apt-get", "install", "-y", "--no-install-recommends", *packages],
        as_root=True,
        forward_env=env,
    )

    m = _APT_SUMMARY.search(r.stdout)
    changed = m is None or int(m.group(1)) > 0 or int(m.group(2)) > 0
    return Receipt.success(f"{len(packages)} packages up to date", changed=changed)


def configure_git(ctx: ProvisionContext, identity: ExecutionIdentity) -> Receipt:
    git = ctx.config.git
    desired = {
        "user.name": ctx.setting(git.name_setting),
        "user.email": ctx.setting(git.email_setting),
        "init.defaultBranch": git.default_branch,
    }
    changed: list[str] = []
    for key, value in desired.items():
        current = ctx.commands.run(
            identity, ["git", "config", "--global", "--get", key], check=False
        )
        if current.ok and current.stdout.strip() == value:
            continue
        ctx.commands.run(identity, ["git", "config", "--global", key, value])
        changed.append(key)

    if changed:
        logger.info("Set git %s", ", ".join(changed))
    return Receipt.success(f"git configured for {desired['user.name']}", changed=bool(changed))


def install_tool(
    ctx: ProvisionContext,
    tool: ToolInstall,
    identity: ExecutionIdentity,
) -> Receipt:
    """Run a vendor installer as the user unless the binary is on PATH."""
    installed = False
    if ctx.commands.which(identity, tool.binary):
        logger.info("%s is already installed", tool.name)
    else:
        logger.info("Downloading and installing %s...", tool.name)
        script = ctx.commands.run(identity, ["curl", "-fsSL", tool.installer_url]).stdout
        ctx.commands.run(identity, [tool.shell], input=script)
        installed = True

    profile_changed = False
    if tool.profile_lines:
        profile = identity.home_path(ctx.config.profile)
        profile_changed = run_as(
            identity,
            lambda: ensure_profile_block(profile, tool.binary, tool.profile_lines),
        )

    return Receipt.success(
        f"{tool.name} {'installed' if installed else 'present'}",
        changed=installed or profile_changed,
    )


def install_claude_cli(ctx: ProvisionContext, identity: ExecutionIdentity) -> Receipt:
    package = ctx.config.claude_cli_package
    listing = ctx.commands.run(identity, ["bun", "pm", "ls", "-g"], check=False)
    if listing.ok and package in listing.stdout:
        logger.info("%s is already installed", package)
        return Receipt.success(f"{package} present")

    logger.info("Installing %s globally with bun...", package)
    ctx.commands.run(identity, ["bun", "install", "-g", package])
    return Receipt.success(f"{package} installed", changed=True)


def setup_github(ctx: ProvisionContext, identity: ExecutionIdentity) -> Receipt:
    store = ctx.credential_store(identity)
    secondary = list(ctx.settings.secondary)
    written = run_as(identity, lambda: store.store_all(secondary))
    logged_in = store.activate(1)
    slots = run_as(identity, store.list_slots)
    return Receipt.success(
        f"gh authenticated; {len(slots)} credential slot(s) available",
        changed=logged_in or written > 0,
        metadata={"slots": slots},
    )


def factory_patch(ctx: ProvisionContext) -> ConfigPatch:
    """Desired Factory CLI config: API key plus one entry per model."""
    factory = ctx.config.factory
    upserts = []
    for model in factory.models:
        element = model.model_dump(exclude={"api_key_setting"})
        element["api_key"] = ctx.setting(model.api_key_setting)
        upserts.append(ArrayUpsert(path="custom_models", key="model", element=element))
    return ConfigPatch(
        set={"api_key": ctx.setting(factory.api_key_setting)},
        upserts=upserts,
    )


def configure_factory(ctx: ProvisionContext, identity: ExecutionIdentity) -> Receipt:
    path = identity.home_path(ctx.config.factory.path)
    patch = factory_patch(ctx)
    changed = run_as(identity, lambda: reconcile(path, patch))
    return Receipt.success(str(path), changed=changed, metadata={"path": str(path)})


def setup_workspace(ctx: ProvisionContext, identity: ExecutionIdentity) -> Receipt:
    workspace = identity.home_path(ctx.config.workspace)

    def _mkdir() -> bool:
        if workspace.is_dir():
            return False
        workspace.mkdir(parents=True)
        return True

    created = run_as(identity, _mkdir)
    return Receipt.success(f"workspace {workspace} ready", changed=created)


# ── Registration ────────────────────────────────────────────────


def build_runner(ctx: ProvisionContext) -> StepRunner:
    """Register the provisioning steps in order."""
    runner = StepRunner()
    cfg = ctx.config
    runner.register(
        "packages", "Installing system packages",
        partial(install_packages, ctx), privileged=True,
    )
    runner.register("git", "Configuring git", partial(configure_git, ctx))
    runner.register("bun", f"Installing {cfg.bun.name}", partial(install_tool, ctx, cfg.bun))
    runner.register("claude-cli", "Installing Claude Code CLI", partial(install_claude_cli, ctx))
    runner.register("github", "Authenticating GitHub CLI", partial(setup_github, ctx))
    runner.register(
        "factory-cli", f"Installing {cfg.factory_cli.name}",
        partial(install_tool, ctx, cfg.factory_cli),
    )
    runner.register("factory-config", "Configuring Factory CLI", partial(configure_factory, ctx))
    runner.register("workspace", "Setting up workspace", partial(setup_workspace, ctx))
    return runner
