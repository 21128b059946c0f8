"""
Tests for the provisioning steps, against the mock command runner.
"""

import json
import stat

import pytest

from devbox.core.errors import MissingSetting, StepFailed
from devbox.core.models.provision import ModelEntry, ProvisionConfig
from devbox.core.models.settings import ValidatedSettings
from devbox.core.services.profile import begin_marker
from devbox.core.steps.provision import (
    ProvisionContext,
    build_runner,
    configure_factory,
    configure_git,
    environment_spec,
    factory_patch,
    install_claude_cli,
    install_packages,
    install_tool,
    setup_github,
    setup_workspace,
)


@pytest.fixture
def ctx(settings, mock_runner) -> ProvisionContext:
    return ProvisionContext(
        config=ProvisionConfig(),
        settings=ValidatedSettings(values=settings, secondary=("ghp_secondtoken",)),
        commands=mock_runner,
    )


def _settle(mock_runner, settings) -> None:
    """Make the mock report everything as already installed and configured."""
    mock_runner.set_available("bun", "factory")
    mock_runner.set_response(["git", "config", "--global", "--get", "user.name"], stdout=settings["GIT_USER_NAME"])
    mock_runner.set_response(["git", "config", "--global", "--get", "user.email"], stdout=settings["GIT_USER_EMAIL"])
    mock_runner.set_response(["git", "config", "--global", "--get", "init.defaultBranch"], stdout="main\n")
    mock_runner.set_response(["bun", "pm", "ls", "-g"], stdout="@anthropic-ai/claude-code@2.0.0\n")
    mock_runner.set_response(["gh", "auth", "token"], stdout=settings["GITHUB_TOKEN"] + "\n")


class TestEnvironmentSpec:
    def test_defaults(self):
        spec = environment_spec(ProvisionConfig())
        assert spec.required == (
            "GITHUB_TOKEN", "FACTORY_API_KEY", "ZAI_API_KEY", "GIT_USER_NAME", "GIT_USER_EMAIL",
        )
        assert spec.secondary_list == "GITHUB_TOKENS_EXTRA"

    def test_referenced_settings_are_required(self):
        config = ProvisionConfig()
        config.factory.models.append(ModelEntry(model="other", api_key_setting="OTHER_KEY"))
        assert "OTHER_KEY" in environment_spec(config).required

    def test_missing_setting_at_use(self, ctx):
        ctx.settings = ValidatedSettings()
        with pytest.raises(MissingSetting):
            ctx.setting("GITHUB_TOKEN")


class TestPackages:
    def test_runs_as_root_noninteractive(self, ctx, privileged_identity, mock_runner):
        mock_runner.set_response(["apt-get", "install"], stdout="0 upgraded, 0 newly installed, 0 to remove")
        receipt = install_packages(ctx, privileged_identity)

        install = mock_runner.calls_to("apt-get", "install")[0]
        assert install.as_root is True
        assert install.forward_env == {"DEBIAN_FRONTEND": "noninteractive"}
        assert "gh" in install.argv
        assert receipt.changed is False

    def test_new_packages_count_as_change(self, ctx, privileged_identity, mock_runner):
        mock_runner.set_response(["apt-get", "install"], stdout="0 upgraded, 3 newly installed, 0 to remove")
        assert install_packages(ctx, privileged_identity).changed is True


class TestGit:
    def test_sets_identity(self, ctx, identity, mock_runner):
        receipt = configure_git(ctx, identity)
        sets = [c.argv[3:] for c in mock_runner.call_log if "--get" not in c.argv]
        assert ["user.name", "Ada Lovelace"] in sets
        assert ["user.email", "ada@example.com"] in sets
        assert ["init.defaultBranch", "main"] in sets
        assert receipt.changed is True

    def test_already_configured(self, ctx, identity, mock_runner, settings):
        _settle(mock_runner, settings)
        assert configure_git(ctx, identity).changed is False
        assert all("--get" in c.argv for c in mock_runner.call_log)


class TestToolInstall:
    def test_installer_script_via_stdin(self, ctx, identity, mock_runner):
        mock_runner.set_response(["curl"], stdout="#!/bin/bash\necho install\n")
        receipt = install_tool(ctx, ctx.config.bun, identity)

        assert mock_runner.calls_to("curl", "-fsSL", "https://bun.sh/install")
        shell = mock_runner.calls_to("bash")[0]
        assert shell.argv == ["bash"]
        assert shell.input == "#!/bin/bash\necho install\n"
        assert receipt.changed is True
        assert begin_marker("bun") in identity.home_path(".bashrc").read_text()

    def test_present_tool_is_left_alone(self, ctx, identity, mock_runner):
        mock_runner.set_available("bun")
        install_tool(ctx, ctx.config.bun, identity)
        receipt = install_tool(ctx, ctx.config.bun, identity)
        assert mock_runner.calls_to("curl") == []
        assert receipt.changed is False

    def test_claude_cli(self, ctx, identity, mock_runner):
        assert install_claude_cli(ctx, identity).changed is True
        assert mock_runner.calls_to("bun", "install", "-g", "@anthropic-ai/claude-code")

    def test_claude_cli_present(self, ctx, identity, mock_runner, settings):
        _settle(mock_runner, settings)
        assert install_claude_cli(ctx, identity).changed is False
        assert mock_runner.calls_to("bun", "install") == []


class TestGitHub:
    def test_stores_secondary_and_logs_in(self, ctx, identity, mock_runner, settings):
        receipt = setup_github(ctx, identity)

        token_file = identity.home_path(".config/devbox/github-tokens/token-2")
        assert token_file.read_text() == "ghp_secondtoken\n"
        assert stat.S_IMODE(token_file.stat().st_mode) == 0o600
        assert mock_runner.calls_to("gh", "auth", "login")[0].input == settings["GITHUB_TOKEN"] + "\n"
        assert receipt.metadata["slots"] == [1, 2]
        assert receipt.changed is True

    def test_primary_never_written(self, ctx, identity, settings):
        setup_github(ctx, identity)
        for path in identity.target_home.rglob("*"):
            if path.is_file():
                assert settings["GITHUB_TOKEN"] not in path.read_text()

    def test_second_run_no_change(self, ctx, identity, mock_runner, settings):
        setup_github(ctx, identity)
        _settle(mock_runner, settings)
        assert setup_github(ctx, identity).changed is False


class TestFactoryConfig:
    def test_patch(self, ctx, settings):
        patch = factory_patch(ctx)
        assert patch.set == {"api_key": settings["FACTORY_API_KEY"]}
        element = patch.upserts[0].element
        assert element["model"] == "glm-4.6"
        assert element["api_key"] == settings["ZAI_API_KEY"]
        assert "api_key_setting" not in element

    def test_preserves_user_models(self, ctx, identity):
        path = identity.home_path(".factory/config.json")
        path.parent.mkdir()
        path.write_text(json.dumps({"custom_models": [{"model": "mine"}], "theme": "dark"}))

        assert configure_factory(ctx, identity).changed is True
        assert configure_factory(ctx, identity).changed is False

        doc = json.loads(path.read_text())
        assert doc["theme"] == "dark"
        assert [m["model"] for m in doc["custom_models"]] == ["mine", "glm-4.6"]

    def test_workspace(self, ctx, identity):
        assert setup_workspace(ctx, identity).changed is True
        assert identity.home_path("code").is_dir()
        assert setup_workspace(ctx, identity).changed is False


class TestFullRun:
    """All eight steps in order."""

    def test_order(self, ctx):
        names = [s.name for s in build_runner(ctx).steps]
        assert names == [
            "packages", "git", "bun", "claude-cli", "github",
            "factory-cli", "factory-config", "workspace",
        ]
        assert build_runner(ctx).step_at(1).privileged is True

    def test_unprivileged_run_skips_packages(self, ctx, identity, mock_runner):
        runner = build_runner(ctx)
        report = runner.run(identity)

        assert runner.completed is True
        assert report.receipts[0].status == "skipped"
        assert mock_runner.calls_to("apt-get") == []
        assert identity.home_path(".factory/config.json").is_file()

    def test_second_run_changes_nothing(self, ctx, identity, mock_runner, settings):
        build_runner(ctx).run(identity)
        profile = identity.home_path(".bashrc").read_text()
        factory = identity.home_path(".factory/config.json").read_text()

        _settle(mock_runner, settings)
        report = build_runner(ctx).run(identity)

        assert report.changed == 0
        assert identity.home_path(".bashrc").read_text() == profile
        assert identity.home_path(".factory/config.json").read_text() == factory

    def test_failure_stops_later_steps(self, ctx, identity, mock_runner):
        mock_runner.set_failure(["bun", "install"], stderr="registry unreachable")
        runner = build_runner(ctx)

        with pytest.raises(StepFailed) as exc:
            runner.run(identity)

        assert exc.value.ordinal == 4
        assert "registry unreachable" in str(exc.value)
        assert mock_runner.calls_to("gh") == []
        assert not identity.home_path(".factory").exists()
        assert not identity.home_path("code").exists()
