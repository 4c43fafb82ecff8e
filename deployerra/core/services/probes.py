"""
Capability prober — read-only questions about live host state.

Each probe runs a fresh command every time it is called. Nothing is
cached: the provisioner's own actions change the answers, so callers
re-probe after mutating instead of trusting an earlier snapshot.
"""

from __future__ import annotations

import logging
import shlex

from deployerra.adapters.registry import AdapterRegistry
from deployerra.core.models.action import Action, Receipt
from deployerra.core.models.config import ComposeSettings, RuntimeSettings
from deployerra.core.models.provisioning import CapabilityFindings

logger = logging.getLogger(__name__)

# Heading under which the docker CLI lists plugins that failed to load
_INVALID_PLUGINS = "Invalid Plugins:"


class CapabilityProber:
    """Probe runtime, service, group, and compose state.

    Args:
        registry: Dispatcher for the probe commands.
        runtime: Runtime binary, service unit, and group names.
        compose: Compose plugin settings (for the detection keyword).
    """

    def __init__(
        self,
        registry: AdapterRegistry,
        runtime: RuntimeSettings,
        compose: ComposeSettings,
    ):
        self._registry = registry
        self._runtime = runtime
        self._compose = compose

    def _probe(self, probe_id: str, command: str) -> Receipt:
        return self._registry.execute_action(
            Action(id=f"probe.{probe_id}", name=probe_id, command=command)
        )

    # ── Capabilities ────────────────────────────────────────────

    def runtime_installed(self) -> bool:
        """The runtime executable resolves on the search path."""
        receipt = self._probe(
            "runtime_installed", f"command -v {shlex.quote(self._runtime.binary)}"
        )
        return receipt.ok

    def service_active(self) -> bool:
        """The service manager reports the runtime unit as exactly ``active``."""
        receipt = self._probe(
            "service_active", f"systemctl is-active {shlex.quote(self._runtime.service)}"
        )
        # is-active exits non-zero for every state but active; read stdout either way
        return receipt.stdout.strip() == "active"

    def user_authorized(self, user: str | None) -> bool:
        """The user's group list already contains the runtime group."""
        if not user:
            return False
        receipt = self._probe("user_authorized", f"id -nG {shlex.quote(user)}")
        if not receipt.ok:
            return False
        return self._runtime.group in receipt.stdout.split()

    def compose_installed(self) -> bool:
        """The runtime's help listing offers the compose plugin as a command.

        A plugin binary that cannot run is still listed, but under
        ``Invalid Plugins:``, so only the part above that heading counts.
        """
        receipt = self._probe(
            "compose_installed", f"{shlex.quote(self._runtime.binary)} help"
        )
        if not receipt.ok:
            return False
        usable = receipt.stdout.split(_INVALID_PLUGINS, 1)[0]
        return self._compose.keyword in usable

    # ── Host facts ──────────────────────────────────────────────

    def invoking_user(self) -> str | None:
        """Name of the user running the tool, or None if undeterminable."""
        receipt = self._probe("invoking_user", "whoami")
        user = receipt.stdout.strip()
        if not receipt.ok or not user:
            return None
        return user

    def architecture(self) -> str | None:
        """Machine hardware name as reported by ``uname -m``."""
        receipt = self._probe("architecture", "uname -m")
        machine = receipt.stdout.strip()
        if not receipt.ok or not machine:
            return None
        return machine

    def release_descriptor(self, source: str) -> str | None:
        """Contents of an OS release descriptor file, or None if unreadable."""
        receipt = self._probe("release_descriptor", f"cat {shlex.quote(source)}")
        if not receipt.ok:
            return None
        return receipt.stdout

    def snapshot(self, user: str | None) -> CapabilityFindings:
        """All four capability findings, freshly probed."""
        findings = CapabilityFindings(
            runtime_installed=self.runtime_installed(),
            service_active=self.service_active(),
            user_authorized=self.user_authorized(user),
            compose_installed=self.compose_installed(),
        )
        logger.debug("Capability snapshot: %s", findings.model_dump())
        return findings
