"""
ProvisionConfig — what the machine should look like.

Loaded from devbox.yml when present; every field has a default, so
an absent file yields the stock developer setup. Secrets never live
here: they come from the environment / .env settings.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from devbox.core.models.settings import DEFAULT_REQUIRED, DEFAULT_SECONDARY_LIST


class SettingsSpec(BaseModel):
    """Names of the settings a run needs."""

    required: list[str] = Field(default_factory=lambda: list(DEFAULT_REQUIRED))
    secondary_list: str | None = DEFAULT_SECONDARY_LIST


class GitConfig(BaseModel):
    """Global git identity, filled from settings."""

    name_setting: str = "GIT_USER_NAME"
    email_setting: str = "GIT_USER_EMAIL"
    default_branch: str = "main"


class ToolInstall(BaseModel):
    """A user-scoped tool installed by its vendor's installer script.

    The script is downloaded with curl and fed to ``shell`` on stdin.
    """

    name: str
    binary: str
    installer_url: str
    shell: Literal["bash", "sh"] = "bash"
    profile_lines: list[str] = Field(default_factory=list)


class GitHubConfig(BaseModel):
    """GitHub CLI authentication."""

    token_setting: str = "GITHUB_TOKEN"
    hostname: str = "github.com"
    git_protocol: str = "https"


class ModelEntry(BaseModel):
    """One custom model entry in the Factory CLI config."""

    model_config = ConfigDict(protected_namespaces=())

    model_display_name: str = "GLM 4.6 Coding Plan"
    model: str = "glm-4.6"
    base_url: str = "https://api.z.ai/api/anthropic"
    provider: str = "zai"
    api_key_setting: str = "ZAI_API_KEY"


class FactoryConfig(BaseModel):
    """Factory CLI config document and the entries it must hold."""

    path: str = ".factory/config.json"
    api_key_setting: str = "FACTORY_API_KEY"
    models: list[ModelEntry] = Field(default_factory=lambda: [ModelEntry()])


def _default_bun() -> ToolInstall:
    return ToolInstall(
        name="Bun JS runtime",
        binary="bun",
        installer_url="https://bun.sh/install",
        shell="bash",
        profile_lines=[
            'export BUN_INSTALL="$HOME/.bun"',
            'export PATH="$BUN_INSTALL/bin:$PATH"',
        ],
    )


def _default_factory_cli() -> ToolInstall:
    return ToolInstall(
        name="Factory CLI",
        binary="factory",
        installer_url="https://app.factory.ai/cli",
        shell="sh",
        profile_lines=['export PATH="$HOME/.local/bin:$PATH"'],
    )


class ProvisionConfig(BaseModel):
    """Root configuration — loaded from devbox.yml."""

    version: int = 1

    settings: SettingsSpec = Field(default_factory=SettingsSpec)
    packages: list[str] = Field(
        default_factory=lambda: [
            "curl", "unzip", "htop", "tmux", "nodejs", "git", "jq", "gh",
        ]
    )
    git: GitConfig = Field(default_factory=GitConfig)
    bun: ToolInstall = Field(default_factory=_default_bun)
    claude_cli_package: str = "@anthropic-ai/claude-code"
    github: GitHubConfig = Field(default_factory=GitHubConfig)
    factory_cli: ToolInstall = Field(default_factory=_default_factory_cli)
    factory: FactoryConfig = Field(default_factory=FactoryConfig)
    workspace: str = "code"
    profile: str = ".bashrc"
    extra_path: list[str] = Field(default_factory=list)
