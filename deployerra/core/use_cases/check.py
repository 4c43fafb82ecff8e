"""
Check use case — report host state without changing anything.

Runs the privilege probe, the classifier, and the four capability
probes. Every command issued here is read-only.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from deployerra.adapters.registry import AdapterRegistry
from deployerra.core.config.loader import load_config
from deployerra.core.errors import ClassificationError, ConfigError
from deployerra.core.models.platform import HostIdentity, PrivilegeState
from deployerra.core.models.provisioning import CapabilityFindings
from deployerra.core.services.distro import OS_RELEASE, classify_host
from deployerra.core.services.privilege import check_privilege
from deployerra.core.services.probes import CapabilityProber
from deployerra.core.use_cases.setup import build_registry

logger = logging.getLogger(__name__)


@dataclass
class CheckResult:
    """Result of a read-only host check."""

    privilege: PrivilegeState | None = None
    host: HostIdentity | None = None
    user: str | None = None
    findings: CapabilityFindings | None = None
    classification_error: str | None = None
    error: str | None = None

    @property
    def provisioned(self) -> bool:
        return self.findings is not None and self.findings.all_satisfied

    def exit_code(self) -> int:
        return 1 if self.error else 0

    def to_dict(self) -> dict:
        if self.error:
            return {"error": self.error}
        return {
            "privilege": self.privilege.value if self.privilege else None,
            "host": self.host.model_dump(mode="json") if self.host else None,
            "classification_error": self.classification_error,
            "user": self.user,
            "findings": self.findings.model_dump() if self.findings else None,
            "provisioned": self.provisioned,
        }


def run_check(
    config_path: Path | None = None,
    registry: AdapterRegistry | None = None,
    os_release: Path = OS_RELEASE,
) -> CheckResult:
    """Probe privilege, host identity, and capabilities.

    An unsupported or unreadable host is reported, not raised: the
    capability probes do not depend on the platform.
    """
    result = CheckResult()

    try:
        config = load_config(config_path)
    except ConfigError as e:
        result.error = str(e)
        return result

    if registry is None:
        registry = build_registry(config.command_timeout)

    result.privilege = check_privilege(registry)

    try:
        result.host = classify_host(config, os_release)
    except ClassificationError as e:
        result.classification_error = str(e)

    prober = CapabilityProber(registry, config.runtime, config.compose)
    result.user = prober.invoking_user()
    result.findings = prober.snapshot(result.user)
    return result
