"""
devbox — CLI entrypoint.

Usage:
    sudo -E devbox                # provision (same as `devbox provision`)
    devbox check                  # validate settings and identity only
    devbox steps                  # list the provisioning steps
    devbox accounts list          # show stored GitHub credential slots
    devbox accounts switch 2      # point gh at the token in slot 2
    devbox status                 # how the last run ended
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

import click

from devbox import __version__
from devbox.core.errors import ProvisionError, RunInterrupted, StepFailed
from devbox.core.observability.logging_config import setup_logging

EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130


def _fail(message: str, code: int = EXIT_FAILURE) -> None:
    click.secho(f"❌ {message}", fg="red", err=True)
    sys.exit(code)


def _env_file(ctx: click.Context) -> Path | None:
    explicit: Path | None = ctx.obj.get("env_file")
    if explicit is not None:
        return explicit
    default = Path(".env")
    return default if default.is_file() else None


def _load(ctx: click.Context):
    """Target identity (injected in tests) and the config from its home."""
    from devbox.core.config.loader import load_config
    from devbox.core.services.privilege import resolve_identity, with_extra_path

    identity = ctx.obj.get("identity") or resolve_identity()
    config = load_config(ctx.obj.get("config_path"), home=identity.target_home)
    return config, with_extra_path(identity, config.extra_path)


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="devbox")
@click.option("--quiet", "-q", is_flag=True, help="Only show errors.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to devbox.yml (default: ./devbox.yml or ~/.config/devbox/devbox.yml).",
)
@click.option(
    "--env-file",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="Settings file (default: ./.env if present).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    quiet: bool,
    debug: bool,
    config_path: str | None,
    env_file: str | None,
) -> None:
    """devbox — provision a development machine, idempotently."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = Path(config_path) if config_path else None
    ctx.obj["env_file"] = Path(env_file) if env_file else None

    if debug:
        level = "DEBUG"
    elif quiet:
        level = "ERROR"
    else:
        level = os.environ.get("DEVBOX_LOG_LEVEL", "INFO")

    setup_logging(
        level=level,
        log_file=os.environ.get("DEVBOX_LOG_FILE"),
        log_file_level=os.environ.get("DEVBOX_LOG_FILE_LEVEL"),
    )

    if ctx.invoked_subcommand is None:
        ctx.invoke(provision_cmd)


@cli.command("provision")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output the run report as JSON.")
@click.pass_context
def provision_cmd(ctx: click.Context, as_json: bool = False) -> None:
    """Bring the machine to the desired state (default command)."""
    from devbox.core.use_cases.provision import prepare, provision

    try:
        prep = prepare(
            ctx.obj.get("config_path"),
            _env_file(ctx),
            commands=ctx.obj.get("commands"),
            identity=ctx.obj.get("identity"),
        )
    except ProvisionError as e:
        _fail(str(e))
        return

    identity = prep.identity
    if not as_json:
        click.secho(f"🚀 Starting dev environment setup for {identity.target_user}", fg="green", bold=True)
        if not identity.is_privileged:
            click.secho("   Not running as root: system packages will be skipped", fg="yellow")

    try:
        result = provision(prep, ctx.obj.get("state_path"))
    except RunInterrupted as e:
        _fail(f"Interrupted during step {e.ordinal} ({e.description})", EXIT_INTERRUPTED)
        return
    except StepFailed as e:
        _fail(f"Step {e.ordinal} ({e.description}) failed: {e.cause}")
        return

    report = result.report
    assert report is not None  # set whenever run() returns

    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
        return

    click.echo()
    for receipt in report.receipts:
        if receipt.status == "skipped":
            click.secho(f"   ⊘ {receipt.step}", fg="yellow", nl=False)
        elif receipt.changed:
            click.secho(f"   ✓ {receipt.step}", fg="green", nl=False)
        else:
            click.secho(f"   = {receipt.step}", fg="white", nl=False)
        click.echo(f"  {receipt.output}" if receipt.output else "")

    click.echo()
    click.secho(
        f"✅ Setup complete: {report.total} steps, {report.changed} changed, {report.skipped} skipped",
        fg="green",
        bold=True,
    )
    if report.changed:
        profile = identity.home_path(prep.config.profile)
        click.echo("   To apply changes, start a new shell or run:")
        click.secho(f"   source {profile}", fg="yellow")


@cli.command()
@click.pass_context
def check(ctx: click.Context) -> None:
    """Validate config, settings and identity without changing anything."""
    from devbox.core.use_cases.provision import prepare

    try:
        prep = prepare(
            ctx.obj.get("config_path"),
            _env_file(ctx),
            identity=ctx.obj.get("identity"),
        )
    except ProvisionError as e:
        _fail(str(e))
        return

    identity = prep.identity
    click.secho("✅ Ready to provision", fg="green", bold=True)
    click.echo(f"   Target user: {identity.target_user} ({identity.target_home})")
    click.echo(f"   Privileged:  {'yes' if identity.is_privileged else 'no'}")
    click.echo(f"   Settings:    {len(prep.settings.values)} required present")
    click.echo(f"   Extra GitHub tokens: {len(prep.settings.secondary)}")
    click.echo(f"   Steps:       {len(prep.runner.steps)}")


@cli.command()
@click.pass_context
def steps(ctx: click.Context) -> None:
    """List the provisioning steps in execution order."""
    from devbox.adapters.mock import MockCommandRunner
    from devbox.core.models.settings import ValidatedSettings
    from devbox.core.steps.provision import ProvisionContext, build_runner

    try:
        config, _ = _load(ctx)
    except ProvisionError as e:
        _fail(str(e))
        return

    # Listing never executes anything; the runner is only used to register
    context = ProvisionContext(config=config, settings=ValidatedSettings(), commands=MockCommandRunner())
    for step in build_runner(context).steps:
        root = "  (root)" if step.privileged else ""
        click.echo(f"   {step.ordinal}. {step.name:<15} {step.description}{root}")


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def status(ctx: click.Context, as_json: bool) -> None:
    """Show how the last provisioning run ended."""
    from devbox.core.persistence.state_file import default_state_path, load_state

    try:
        _, identity = _load(ctx)
    except ProvisionError as e:
        _fail(str(e))
        return

    path = ctx.obj.get("state_path") or default_state_path(identity)
    state = load_state(path)

    if as_json:
        click.echo(json.dumps(state.model_dump(mode="json"), indent=2))
        return

    run = state.last_run
    if not run.run_id:
        click.echo("No provisioning run recorded yet.")
        return

    color = {"ok": "green", "interrupted": "yellow", "failed": "red"}.get(run.status, "white")
    click.secho(f"📋 Last run {run.run_id}: ", bold=True, nl=False)
    click.secho(run.status, fg=color)
    click.echo(f"   Ended at: {run.ended_at}")
    if not run.completed:
        click.echo(f"   Stopped at step {run.cursor}: {run.failed_step}")
        if run.error:
            click.echo(f"   Cause: {run.error}")
    click.echo(f"   Runs: {state.runs_completed}/{state.runs_total} completed")


# ── Credential slots ────────────────────────────────────────────


def _credential_store(ctx: click.Context):
    from devbox.adapters.command import SubprocessRunner
    from devbox.core.config.env_file import load_settings
    from devbox.core.services.credentials import CredentialStore, default_store_dir
    from devbox.core.services.gh_auth import GitHubAuthenticator

    config, identity = _load(ctx)
    values = load_settings(_env_file(ctx))
    commands = ctx.obj.get("commands") or SubprocessRunner()
    gh = config.github
    return CredentialStore(
        default_store_dir(identity),
        primary=values.get(gh.token_setting, ""),
        authenticator=GitHubAuthenticator(
            commands, identity, hostname=gh.hostname, git_protocol=gh.git_protocol
        ),
    )


@cli.group()
def accounts() -> None:
    """Stored GitHub credentials and account switching."""


@accounts.command("list")
@click.pass_context
def accounts_list(ctx: click.Context) -> None:
    """List credential slots (secrets masked)."""
    try:
        store = _credential_store(ctx)
    except ProvisionError as e:
        _fail(str(e))
        return

    for record in store.records():
        label = "primary" if record.is_primary else str(record.storage_path or "")
        click.echo(f"   {record.slot}. {record.masked:<16} {label}")


@accounts.command("switch")
@click.argument("slot", type=click.IntRange(min=1))
@click.pass_context
def accounts_switch(ctx: click.Context, slot: int) -> None:
    """Authenticate gh with the token stored in SLOT."""
    try:
        store = _credential_store(ctx)
        changed = store.activate(slot)
    except ProvisionError as e:
        _fail(str(e))
        return

    if changed:
        click.secho(f"✅ Switched gh to credential slot {slot}", fg="green")
    else:
        click.echo(f"   Credential slot {slot} is already active")


if __name__ == "__main__":
    cli()
