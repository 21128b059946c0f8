"""
GitHub CLI authentication — hand a token to ``gh`` without exposing it.

The token is piped to ``gh auth login --with-token`` on stdin. It
never appears in argv (visible in process listings) or in the
child's environment (``gh`` would also prefer GH_TOKEN over its
own stored credentials and refuse to log in).
"""

from __future__ import annotations

import logging

from devbox.adapters.base import CommandRunner
from devbox.core.models.identity import ExecutionIdentity

logger = logging.getLogger(__name__)


class GitHubAuthenticator:
    """Log the target user's ``gh`` into a host with a given token."""

    def __init__(
        self,
        runner: CommandRunner,
        identity: ExecutionIdentity,
        hostname: str = "github.com",
        git_protocol: str = "https",
    ):
        self.runner = runner
        self.identity = identity
        self.hostname = hostname
        self.git_protocol = git_protocol

    def current_token(self) -> str | None:
        """Token gh is currently using for the host, or None."""
        r = self.runner.run(
            self.identity,
            ["gh", "auth", "token", "--hostname", self.hostname],
            check=False,
        )
        token = r.stdout.strip()
        return token if r.ok and token else None

    def login(self, token: str) -> bool:
        """Authenticate with ``token`` unless it is already active.

        Returns:
            True if a login was performed, False if already in place.
        """
        if self.current_token() == token:
            logger.info("gh is already authenticated with this token on %s", self.hostname)
            return False

        logger.info("Authenticating gh on %s", self.hostname)
        self.runner.run(
            self.identity,
            ["gh", "auth", "login", "--hostname", self.hostname, "--with-token"],
            input=token + "\n",
        )
        self.runner.run(
            self.identity,
            ["gh", "config", "set", "git_protocol", self.git_protocol],
        )
        return True
