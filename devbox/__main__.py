"""Allow ``python -m devbox``."""

from devbox.main import cli

cli()
