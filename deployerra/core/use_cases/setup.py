"""
Setup use case — provision the host end to end.

This is the top-level orchestrator: it loads configuration, gates on
privileges, classifies the host, and runs the provisioner. Config,
privilege, and classification failures are fatal and happen before any
host mutation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from deployerra.adapters.registry import AdapterRegistry
from deployerra.adapters.shell.command import ShellCommandAdapter
from deployerra.core.config.loader import load_config
from deployerra.core.engine.provisioner import ProgressCallback, Provisioner
from deployerra.core.errors import ClassificationError, ConfigError, PrivilegeError
from deployerra.core.models.platform import HostIdentity, PrivilegeState
from deployerra.core.models.provisioning import ProvisioningReport
from deployerra.core.observability.logging_config import add_secret
from deployerra.core.services.distro import OS_RELEASE, classify_host
from deployerra.core.services.privilege import require_privilege

logger = logging.getLogger(__name__)


@dataclass
class SetupResult:
    """Result of a setup run."""

    report: ProvisioningReport | None = None
    host: HostIdentity | None = None
    privilege: PrivilegeState | None = None
    error: str | None = None
    error_kind: str | None = None   # config, privilege, classification

    def exit_code(self, strict: bool = False) -> int:
        """Process exit status for this result.

        Fatal conditions always exit 1. With ``strict``, reported
        (non-fatal) step failures do too.
        """
        if self.error or self.report is None:
            return 1
        if self.report.status == "failed":
            return 1
        if strict and self.report.status == "partial":
            return 1
        return 0

    def to_dict(self) -> dict:
        result: dict = {}
        if self.privilege:
            result["privilege"] = self.privilege.value
        if self.error:
            result["error"] = self.error
            result["error_kind"] = self.error_kind
            return result
        if self.report:
            result.update(self.report.to_dict())
        return result


def build_registry(timeout: int | None = None) -> AdapterRegistry:
    """Registry wired to the real shell."""
    registry = AdapterRegistry()
    registry.register(ShellCommandAdapter(timeout=timeout))
    return registry


def run_setup(
    config_path: Path | None = None,
    password: str | None = None,
    dry_run: bool = False,
    registry: AdapterRegistry | None = None,
    os_release: Path = OS_RELEASE,
    on_progress: ProgressCallback | None = None,
) -> SetupResult:
    """Provision the host with the container runtime and compose plugin.

    Args:
        config_path: Optional operator config file.
        password: Optional sudo password, used only when passwordless
            elevation is unavailable.
        dry_run: Probe for real but skip every mutating command.
        registry: Optional pre-configured adapter registry.
        os_release: Host identity record to classify.
        on_progress: Optional status-line callback.

    Returns:
        SetupResult with the provisioning report or a fatal error.
    """
    result = SetupResult()
    add_secret(password)

    # ── Load configuration ───────────────────────────────────────
    try:
        config = load_config(config_path)
    except ConfigError as e:
        result.error = str(e)
        result.error_kind = "config"
        return result

    if registry is None:
        registry = build_registry(config.command_timeout)

    # ── Privilege gate ───────────────────────────────────────────
    try:
        result.privilege = require_privilege(registry, password)
    except PrivilegeError as e:
        logger.error("Privilege check failed: %s", e)
        result.error = str(e)
        result.error_kind = "privilege"
        return result
    if on_progress:
        on_progress("privilege", "found", "Sudo access confirmed")

    # ── Classify host ────────────────────────────────────────────
    try:
        result.host = classify_host(config, os_release)
    except ClassificationError as e:
        logger.error("Host classification failed: %s", e)
        result.error = str(e)
        result.error_kind = "classification"
        return result
    if on_progress:
        on_progress("distro", "found", f"Supported distro detected: {result.host}")

    # ── Provision ────────────────────────────────────────────────
    provisioner = Provisioner(
        host=result.host,
        config=config,
        registry=registry,
        dry_run=dry_run,
        on_progress=on_progress,
    )
    result.report = provisioner.run()
    return result
