"""devbox — idempotent development-machine provisioner."""

__version__ = "0.1.0"
