"""
Provisioning models — findings, step outcomes, and the run report.

A provisioning run never persists anything: the report is rebuilt from
live probes on every invocation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from pydantic import BaseModel

from deployerra.core.models.platform import HostIdentity


class CapabilityFindings(BaseModel):
    """Snapshot of the four capability probes.

    Only valid until the next mutating action; re-probe instead of
    reusing an old snapshot.
    """

    runtime_installed: bool = False
    service_active: bool = False
    user_authorized: bool = False
    compose_installed: bool = False

    @property
    def all_satisfied(self) -> bool:
        return (
            self.runtime_installed
            and self.service_active
            and self.user_authorized
            and self.compose_installed
        )


class Step(StrEnum):
    """Corrective steps the provisioner can take."""

    REFRESH_REPOSITORIES = "refresh_repositories"
    RESOLVE_INSTALL_COMMAND = "resolve_install_command"
    INSTALL_RUNTIME = "install_runtime"
    START_SERVICE = "start_service"
    RESOLVE_IDENTITY = "resolve_identity"
    GRANT_GROUP = "grant_group"
    RESTART_SERVICE = "restart_service"
    DETECT_ARCHITECTURE = "detect_architecture"
    INSTALL_COMPOSE = "install_compose"


class ActionResult(StrEnum):
    """Outcome classification of one corrective step."""

    SUCCEEDED = "succeeded"
    FAILED_FATAL = "failed_fatal"          # halts the rest of its sub-flow
    FAILED_REPORTED = "failed_reported"    # reported, siblings continue
    FAILED_IGNORABLE = "failed_ignorable"  # non-zero but means success
    SKIPPED = "skipped"                    # dry-run


class ErrorCode(StrEnum):
    """Why a corrective step failed."""

    REPOSITORY_REFRESH_FAILED = "repository_refresh_failed"
    UNSUPPORTED_PLATFORM_VARIANT = "unsupported_platform_variant"
    UNSUPPORTED_DISTRO = "unsupported_distro"
    RUNTIME_INSTALL_FAILED = "runtime_install_failed"
    SERVICE_START_FAILED = "service_start_failed"
    IDENTITY_RESOLUTION_FAILED = "identity_resolution_failed"
    GROUP_GRANT_FAILED = "group_grant_failed"
    SERVICE_RESTART_FAILED = "service_restart_failed"
    ARCHITECTURE_DETECTION_FAILED = "architecture_detection_failed"
    COMPOSE_PLUGIN_INSTALL_FAILED = "compose_plugin_install_failed"


class StepOutcome(BaseModel):
    """Result of one corrective step."""

    step: Step
    result: ActionResult
    error: ErrorCode | None = None
    message: str = ""
    command: str = ""
    return_code: int | None = None
    stderr: str = ""

    @property
    def proceed(self) -> bool:
        """Whether the flow may continue past this step."""
        return self.result in (
            ActionResult.SUCCEEDED,
            ActionResult.FAILED_IGNORABLE,
            ActionResult.SKIPPED,
        )

    @property
    def fatal(self) -> bool:
        return self.result == ActionResult.FAILED_FATAL

    @property
    def reported(self) -> bool:
        return self.result == ActionResult.FAILED_REPORTED


class ManualAction(BaseModel):
    """Something the operator has to do that the tool cannot verify."""

    reason: str
    instruction: str


@dataclass
class ProvisioningReport:
    """Everything one provisioning run did and found."""

    host: HostIdentity
    dry_run: bool = False
    final: CapabilityFindings | None = None
    steps: list[StepOutcome] = field(default_factory=list)
    manual_actions: list[ManualAction] = field(default_factory=list)

    def add(self, outcome: StepOutcome) -> StepOutcome:
        self.steps.append(outcome)
        return outcome

    @property
    def fatal_failures(self) -> list[StepOutcome]:
        return [s for s in self.steps if s.fatal]

    @property
    def reported_failures(self) -> list[StepOutcome]:
        return [s for s in self.steps if s.reported]

    @property
    def corrective_steps(self) -> list[StepOutcome]:
        """Steps that attempted (or in dry-run, would attempt) a change."""
        return [s for s in self.steps if s.command]

    @property
    def status(self) -> str:
        if self.fatal_failures:
            return "failed"
        if self.reported_failures:
            return "partial"
        return "ok"

    def to_dict(self) -> dict[str, Any]:
        return {
            "host": self.host.model_dump(mode="json"),
            "dry_run": self.dry_run,
            "status": self.status,
            "final": self.final.model_dump() if self.final else None,
            "steps": [s.model_dump(mode="json") for s in self.steps],
            "manual_actions": [m.model_dump() for m in self.manual_actions],
        }
