"""
Domain models — Pydantic types for the provisioner.

All models are re-exported here for convenient access:

    from deployerra.core.models import Action, Receipt, Platform, StepOutcome
"""

from deployerra.core.models.action import Action, Receipt
from deployerra.core.models.config import (
    ComposeSettings,
    InstallVariant,
    PlatformCommands,
    ProvisionerConfig,
    RuntimeSettings,
)
from deployerra.core.models.platform import HostIdentity, Platform, PrivilegeState
from deployerra.core.models.provisioning import (
    ActionResult,
    CapabilityFindings,
    ErrorCode,
    ManualAction,
    ProvisioningReport,
    Step,
    StepOutcome,
)

__all__ = [
    # action.py
    "Action",
    "Receipt",
    # config.py
    "ComposeSettings",
    "InstallVariant",
    "PlatformCommands",
    "ProvisionerConfig",
    "RuntimeSettings",
    # platform.py
    "HostIdentity",
    "Platform",
    "PrivilegeState",
    # provisioning.py
    "ActionResult",
    "CapabilityFindings",
    "ErrorCode",
    "ManualAction",
    "ProvisioningReport",
    "Step",
    "StepOutcome",
]
