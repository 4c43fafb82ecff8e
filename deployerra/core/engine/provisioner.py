"""
Provisioner — the idempotent installation state machine.

The provisioner never remembers what it has done. Every decision is
taken from a fresh probe, so running it on an already provisioned host
only verifies, and a failed run can simply be re-invoked.

Flow:
    runtime installed?
        no  → sub-flow A: refresh → resolve install → install → enable
              → identity → group grant → restart
        yes → sub-flow B: enable if inactive → identity → grant if missing
    then always: compose reconciliation → final snapshot

A fatal step halts the rest of its own sub-flow. Reported failures are
recorded and the flow moves on. Compose reconciliation runs after either
sub-flow regardless of how it ended.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from deployerra.adapters.registry import AdapterRegistry
from deployerra.core.models.action import Action, Receipt
from deployerra.core.models.config import ProvisionerConfig
from deployerra.core.models.platform import HostIdentity
from deployerra.core.models.provisioning import (
    ActionResult,
    ErrorCode,
    ManualAction,
    ProvisioningReport,
    Step,
    StepOutcome,
)
from deployerra.core.services.probes import CapabilityProber

logger = logging.getLogger(__name__)

# (topic, status, message) — status is one of
# found, missing, started, done, failed, skipped, notice
ProgressCallback = Callable[[str, str, str], None]


class Provisioner:
    """Bring one classified host to a provisioned state.

    Args:
        host: The classified host identity.
        config: Frozen provisioning tables.
        registry: Dispatcher for every host command.
        prober: Capability prober (built from ``registry`` if omitted).
        dry_run: Probe for real but skip every mutating command.
        on_progress: Optional callback for human-readable status lines.
    """

    def __init__(
        self,
        host: HostIdentity,
        config: ProvisionerConfig,
        registry: AdapterRegistry,
        prober: CapabilityProber | None = None,
        dry_run: bool = False,
        on_progress: ProgressCallback | None = None,
    ):
        self.host = host
        self.config = config
        self.dry_run = dry_run
        self._registry = registry
        self._commands = config.commands_for(host.platform)
        self._runtime = config.runtime
        self.prober = prober or CapabilityProber(registry, config.runtime, config.compose)
        self._on_progress = on_progress
        self._user: str | None = None

    # ── Entry point ─────────────────────────────────────────────

    def run(self) -> ProvisioningReport:
        report = ProvisioningReport(host=self.host, dry_run=self.dry_run)
        binary = self._runtime.binary

        if self.prober.runtime_installed():
            self._emit("runtime", "found", f"{binary} found")
            self._reconcile_runtime(report)
        else:
            self._emit("runtime", "missing", f"{binary} not found, proceeding to install it")
            self._install_runtime(report)

        self._reconcile_compose(report)

        report.final = self.prober.snapshot(self._user or self.prober.invoking_user())
        logger.info("Provisioning finished: %s", report.status)
        return report

    # ── Sub-flow A: runtime absent ──────────────────────────────

    def _install_runtime(self, report: ProvisioningReport) -> None:
        if not self._refresh_repositories(report).proceed:
            return

        install_command = self._resolve_install_command(report)
        if install_command is None:
            return

        install = self._run_step(
            report,
            Step.INSTALL_RUNTIME,
            install_command,
            ErrorCode.RUNTIME_INSTALL_FAILED,
            fatal=True,
        )
        if not install.proceed:
            return

        self._run_step(
            report,
            Step.START_SERVICE,
            self._runtime.enable(),
            ErrorCode.SERVICE_START_FAILED,
        )

        user = self._resolve_identity(report)
        if user is None:
            return
        self._grant_group(report, user)

        self._run_step(
            report,
            Step.RESTART_SERVICE,
            self._runtime.restart(),
            ErrorCode.SERVICE_RESTART_FAILED,
        )

    def _refresh_repositories(self, report: ProvisioningReport) -> StepOutcome:
        self._emit(Step.REFRESH_REPOSITORIES, "started", "Updating package repositories...")
        command = self._commands.refresh_for(self.host.distro_id)
        receipt = self._execute(Step.REFRESH_REPOSITORIES, command)

        if receipt.failed and self.config.is_ignorable_refresh_failure(
            self.host.platform, receipt.return_code
        ):
            outcome = self._outcome(
                Step.REFRESH_REPOSITORIES,
                command,
                receipt,
                ActionResult.FAILED_IGNORABLE,
                message=f"Refresh exited {receipt.return_code}, treated as success "
                f"on {self.host.platform}",
            )
            return self._record(report, outcome)

        return self._record(
            report,
            self._classify(
                Step.REFRESH_REPOSITORIES,
                command,
                receipt,
                ErrorCode.REPOSITORY_REFRESH_FAILED,
                fatal=True,
            ),
        )

    def _resolve_install_command(self, report: ProvisioningReport) -> str | None:
        commands = self._commands

        if commands.has_variants:
            source = commands.variant_source or ""
            descriptor = self.prober.release_descriptor(source)
            variant = commands.match_variant(descriptor) if descriptor is not None else None
            if variant is None:
                reason = (
                    f"could not read {source}" if descriptor is None
                    else f"unrecognised release: {descriptor.strip()!r}"
                )
                self._fail_resolution(
                    report,
                    Step.RESOLVE_INSTALL_COMMAND,
                    ErrorCode.UNSUPPORTED_PLATFORM_VARIANT,
                    f"Unsupported {self.host.platform} variant: {reason}",
                )
                return None
            logger.info("Matched install variant %r", variant.marker)
            return variant.install

        command = commands.install_for(self.host.distro_id)
        if command is None:
            self._fail_resolution(
                report,
                Step.RESOLVE_INSTALL_COMMAND,
                ErrorCode.UNSUPPORTED_DISTRO,
                f"No install command for {self.host}",
            )
        return command

    # ── Sub-flow B: runtime present ─────────────────────────────

    def _reconcile_runtime(self, report: ProvisioningReport) -> None:
        service = self._runtime.service

        if self.prober.service_active():
            self._emit(Step.START_SERVICE, "found", f"{service} service is active")
        else:
            self._emit(
                Step.START_SERVICE, "missing",
                f"{service} service is not running, starting it now",
            )
            self._run_step(
                report,
                Step.START_SERVICE,
                self._runtime.enable(),
                ErrorCode.SERVICE_START_FAILED,
            )

        user = self._resolve_identity(report)
        if user is None:
            return

        if self.prober.user_authorized(user):
            self._emit(
                Step.GRANT_GROUP, "found",
                f"User '{user}' is already in the {self._runtime.group} group",
            )
        else:
            self._grant_group(report, user)

    # ── Shared steps ────────────────────────────────────────────

    def _resolve_identity(self, report: ProvisioningReport) -> str | None:
        user = self.prober.invoking_user()
        if user is None:
            self._fail_resolution(
                report,
                Step.RESOLVE_IDENTITY,
                ErrorCode.IDENTITY_RESOLUTION_FAILED,
                "Failed to get current username",
            )
            return None
        self._user = user
        self._emit(Step.RESOLVE_IDENTITY, "found", f"Running as '{user}'")
        return user

    def _grant_group(self, report: ProvisioningReport, user: str) -> None:
        group = self._runtime.group
        self._emit(Step.GRANT_GROUP, "started", f"Adding user '{user}' to {group} group...")
        outcome = self._run_step(
            report,
            Step.GRANT_GROUP,
            self._runtime.grant(user),
            ErrorCode.GROUP_GRANT_FAILED,
            quiet=True,
        )
        if outcome.result == ActionResult.SUCCEEDED:
            self._emit(Step.GRANT_GROUP, "done", f"User '{user}' added to {group} group")
            notice = ManualAction(
                reason=f"User '{user}' was added to the '{group}' group",
                instruction="Log out and back in for the group change to take effect",
            )
            report.manual_actions.append(notice)
            self._emit(Step.GRANT_GROUP, "notice", f"NOTE: {notice.instruction}")
        elif outcome.result == ActionResult.SKIPPED:
            self._emit(Step.GRANT_GROUP, "skipped", f"[dry-run] would run: {outcome.command}")
        else:
            self._emit(Step.GRANT_GROUP, "failed", f"Failed to add user '{user}' to {group} group")

    # ── Compose reconciliation ──────────────────────────────────

    def _reconcile_compose(self, report: ProvisioningReport) -> None:
        self._emit(Step.INSTALL_COMPOSE, "started", "Checking for docker compose")
        if self.prober.compose_installed():
            self._emit(Step.INSTALL_COMPOSE, "found", "docker compose found")
            return

        self._emit(Step.INSTALL_COMPOSE, "missing", "docker compose not found, installing it")

        machine = self.prober.architecture()
        if machine is None:
            self._fail_resolution(
                report,
                Step.DETECT_ARCHITECTURE,
                ErrorCode.ARCHITECTURE_DETECTION_FAILED,
                "Failed to detect system architecture",
            )
            return

        compose = self.config.compose
        command = compose.install_pipeline(machine)
        logger.info("Downloading compose plugin from %s", compose.download_url(machine))
        receipt = self._execute(Step.INSTALL_COMPOSE, command)

        if receipt.skipped:
            self._record(
                report,
                self._outcome(Step.INSTALL_COMPOSE, command, receipt, ActionResult.SKIPPED),
            )
            return

        # Success is whatever the re-probe says, not the pipeline's exit status
        if self.prober.compose_installed():
            outcome = self._outcome(
                Step.INSTALL_COMPOSE, command, receipt, ActionResult.SUCCEEDED,
                message="docker compose installed successfully",
            )
        else:
            message = (
                f"Installation command failed: {receipt.error}"
                if receipt.failed
                else "Download finished but docker compose is still not available"
            )
            outcome = self._outcome(
                Step.INSTALL_COMPOSE, command, receipt, ActionResult.FAILED_REPORTED,
                error=ErrorCode.COMPOSE_PLUGIN_INSTALL_FAILED,
                message=message,
            )
        self._record(report, outcome)

    # ── Plumbing ────────────────────────────────────────────────

    def _execute(self, step: Step, command: str) -> Receipt:
        action = Action(
            id=step.value,
            name=step.value.replace("_", " "),
            command=command,
            elevated=True,
            mutating=True,
        )
        return self._registry.execute_action(action, dry_run=self.dry_run)

    def _run_step(
        self,
        report: ProvisioningReport,
        step: Step,
        command: str,
        error: ErrorCode,
        fatal: bool = False,
        quiet: bool = False,
    ) -> StepOutcome:
        """Run one mutating command and record its classified outcome."""
        if not quiet:
            self._emit(step, "started", f"{step.value.replace('_', ' ').capitalize()}...")
        receipt = self._execute(step, command)
        outcome = self._classify(step, command, receipt, error, fatal)
        return self._record(report, outcome, quiet=quiet)

    def _classify(
        self,
        step: Step,
        command: str,
        receipt: Receipt,
        error: ErrorCode,
        fatal: bool,
    ) -> StepOutcome:
        if receipt.skipped:
            return self._outcome(step, command, receipt, ActionResult.SKIPPED)
        if receipt.ok:
            return self._outcome(step, command, receipt, ActionResult.SUCCEEDED)
        result = ActionResult.FAILED_FATAL if fatal else ActionResult.FAILED_REPORTED
        return self._outcome(step, command, receipt, result, error=error, message=receipt.error or "")

    @staticmethod
    def _outcome(
        step: Step,
        command: str,
        receipt: Receipt,
        result: ActionResult,
        error: ErrorCode | None = None,
        message: str = "",
    ) -> StepOutcome:
        return StepOutcome(
            step=step,
            result=result,
            error=error,
            message=message,
            command=command,
            return_code=receipt.return_code,
            stderr=receipt.stderr,
        )

    def _fail_resolution(
        self,
        report: ProvisioningReport,
        step: Step,
        error: ErrorCode,
        message: str,
    ) -> None:
        """Record a fatal failure of a step that runs no mutating command."""
        self._record(
            report,
            StepOutcome(step=step, result=ActionResult.FAILED_FATAL, error=error, message=message),
        )

    def _record(
        self,
        report: ProvisioningReport,
        outcome: StepOutcome,
        quiet: bool = False,
    ) -> StepOutcome:
        report.add(outcome)

        if not outcome.proceed:
            label = "fatal" if outcome.fatal else "reported"
            logger.warning("%s failed (%s): %s", outcome.step, label, outcome.message)

        if quiet:
            return outcome
        if outcome.result == ActionResult.SKIPPED:
            self._emit(outcome.step, "skipped", f"[dry-run] would run: {outcome.command}")
        elif outcome.proceed:
            detail = f" ({outcome.message})" if outcome.message else ""
            self._emit(outcome.step, "done", f"{outcome.step.value} succeeded{detail}")
        else:
            self._emit(outcome.step, "failed", outcome.message or f"{outcome.step.value} failed")
        return outcome

    def _emit(self, topic: str, status: str, message: str) -> None:
        logger.debug("[%s] %s: %s", topic, status, message)
        if self._on_progress:
            self._on_progress(str(topic), status, message)
