"""
Exception taxonomy for failures that stop a run before any mutation.

Failures of individual corrective steps are not exceptions; they are
recorded as ``StepOutcome`` values by the provisioner.
"""

from __future__ import annotations


class DeployerraError(Exception):
    """Base class for all fatal, pre-mutation errors."""


class ConfigError(DeployerraError):
    """Raised when configuration is invalid or missing."""


class ClassificationError(DeployerraError):
    """The host could not be mapped to a supported platform."""


class UnreadableIdentitySource(ClassificationError):
    """The host identity record cannot be read or has no ID key."""

    def __init__(self, source: str, reason: str) -> None:
        self.source = source
        self.reason = reason
        super().__init__(f"Could not determine the distro from {source}: {reason}")


class UnsupportedDistro(ClassificationError):
    """The host reports a distro id outside the supported set."""

    def __init__(self, raw_id: str) -> None:
        self.raw_id = raw_id
        super().__init__(f"Unsupported distro: {raw_id!r}")


class PrivilegeError(DeployerraError):
    """Elevated rights are not available."""


class RequiresPassword(PrivilegeError):
    def __init__(self, message: str = "") -> None:
        super().__init__(
            message
            or "Sudo access requires a password. "
            "Provide one with -p/--password or DEPLOYERRA_SUDO_PASSWORD."
        )


class PrivilegeDenied(PrivilegeError):
    def __init__(self, message: str = "") -> None:
        super().__init__(message or "Sudo access was denied for the current user.")
