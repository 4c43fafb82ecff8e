"""deployerra — bootstrap a Linux host for container deployments."""

__version__ = "0.1.0"
