"""
Tests for the provisioner — sub-flows, failure classes, dry-run, idempotence.
"""

import pytest

from deployerra.core.models.action import Receipt
from deployerra.core.models.platform import Platform
from deployerra.core.models.provisioning import ActionResult, ErrorCode, Step

MUTATING_SEQUENCE = [
    "refresh_repositories",
    "install_runtime",
    "start_service",
    "grant_group",
    "restart_service",
    "install_compose",
]


def mutating_ids(mock_adapter) -> list[str]:
    return [ctx.action.id for ctx in mock_adapter.mutating_calls]


def outcome_for(report, step):
    matches = [s for s in report.steps if s.step == step]
    assert len(matches) == 1, f"expected one {step} outcome, got {len(matches)}"
    return matches[0]


# ── Sub-flow A: runtime absent ──────────────────────────────────────


class TestFreshInstall:
    def test_full_sequence(self, make_provisioner, host, mock_adapter):
        report = make_provisioner().run()

        assert mutating_ids(mock_adapter) == MUTATING_SEQUENCE
        assert report.status == "ok"
        assert [s.step for s in report.steps] == [Step(i) for i in MUTATING_SEQUENCE]
        assert all(s.result == ActionResult.SUCCEEDED for s in report.steps)
        assert report.final.all_satisfied

    def test_commands_for_debian(self, make_provisioner, host, mock_adapter):
        make_provisioner().run()
        commands = {ctx.action.id: ctx.command for ctx in mock_adapter.mutating_calls}
        assert commands["refresh_repositories"] == "apt-get update"
        assert commands["install_runtime"] == "apt-get install -y docker.io"
        assert commands["start_service"] == "systemctl enable --now docker"
        assert commands["grant_group"] == "usermod -aG docker alice"
        assert commands["restart_service"] == "systemctl restart docker"
        assert "docker-compose-linux-x86_64" in commands["install_compose"]

    def test_mutations_are_elevated(self, make_provisioner, host, mock_adapter):
        make_provisioner().run()
        assert all(ctx.action.elevated for ctx in mock_adapter.mutating_calls)

    def test_group_grant_needs_relogin(self, make_provisioner, host):
        report = make_provisioner().run()
        assert len(report.manual_actions) == 1
        notice = report.manual_actions[0]
        assert "alice" in notice.reason
        assert "Log out and back in" in notice.instruction

    @pytest.mark.parametrize(
        "distro_id, expected",
        [
            ("fedora", "dnf install -y docker"),
            ("rhel", "docker-ce.repo"),
            ("ol", "docker-ce.repo"),
        ],
    )
    def test_redhat_install_per_distro(
        self, make_provisioner, host, mock_adapter, distro_id, expected
    ):
        make_provisioner(Platform.REDHAT, distro_id).run()
        install = [c for c in mock_adapter.mutating_calls if c.action.id == "install_runtime"]
        assert expected in install[0].command

    @pytest.mark.parametrize(
        "distro_id, expected",
        [
            ("fedora", "dnf check-update"),
            ("rhel", "dnf check-update"),
            ("ol", "yum update -y"),
        ],
    )
    def test_redhat_refresh_per_distro(
        self, make_provisioner, host, mock_adapter, distro_id, expected
    ):
        make_provisioner(Platform.REDHAT, distro_id).run()
        refresh = [c for c in mock_adapter.mutating_calls if c.action.id == "refresh_repositories"]
        assert refresh[0].command == expected

    def test_arch(self, make_provisioner, host, mock_adapter):
        make_provisioner(Platform.ARCH, "arch").run()
        commands = {ctx.action.id: ctx.command for ctx in mock_adapter.mutating_calls}
        assert commands["refresh_repositories"] == "pacman -Syy --noconfirm"
        assert commands["install_runtime"] == "pacman -S --noconfirm docker"


class TestRefreshQuirk:
    def test_redhat_100_means_updates_available(self, make_provisioner, host, mock_adapter):
        host.refresh_code = 100
        report = make_provisioner(Platform.REDHAT, "fedora").run()

        refresh = outcome_for(report, Step.REFRESH_REPOSITORIES)
        assert refresh.result == ActionResult.FAILED_IGNORABLE
        assert refresh.return_code == 100
        assert "install_runtime" in mutating_ids(mock_adapter)
        assert report.status == "ok"

    def test_redhat_other_code_is_fatal(self, make_provisioner, host, mock_adapter):
        host.refresh_code = 1
        report = make_provisioner(Platform.REDHAT, "rhel").run()

        refresh = outcome_for(report, Step.REFRESH_REPOSITORIES)
        assert refresh.result == ActionResult.FAILED_FATAL
        assert refresh.error == ErrorCode.REPOSITORY_REFRESH_FAILED
        assert "install_runtime" not in mutating_ids(mock_adapter)

    @pytest.mark.parametrize(
        "platform, distro_id",
        [(Platform.DEBIAN, "debian"), (Platform.AMAZON, "amzn"), (Platform.ARCH, "arch")],
    )
    def test_100_is_fatal_elsewhere(self, make_provisioner, host, mock_adapter, platform, distro_id):
        host.refresh_code = 100
        host.release = "Amazon Linux release 2023"
        report = make_provisioner(platform, distro_id).run()

        assert outcome_for(report, Step.REFRESH_REPOSITORIES).fatal
        assert report.status == "failed"
        # Sub-flow A halts; compose reconciliation still runs (docker absent)
        assert mutating_ids(mock_adapter) == ["refresh_repositories", "install_compose"]


class TestAmazonVariants:
    def test_2023(self, make_provisioner, host, mock_adapter):
        host.release = "Amazon Linux release 2023.4.20240401 (Amazon Linux)"
        make_provisioner(Platform.AMAZON, "amzn").run()
        commands = {ctx.action.id: ctx.command for ctx in mock_adapter.mutating_calls}
        assert commands["refresh_repositories"] == "yum update -y"
        assert commands["install_runtime"] == "yum install -y docker"

    def test_2(self, make_provisioner, host, mock_adapter):
        host.release = "Amazon Linux release 2 (Karoo)"
        make_provisioner(Platform.AMAZON, "amzn").run()
        commands = {ctx.action.id: ctx.command for ctx in mock_adapter.mutating_calls}
        assert commands["install_runtime"] == "amazon-linux-extras install -y docker"

    def test_descriptor_read_after_refresh(self, make_provisioner, host, mock_adapter):
        host.release = "Amazon Linux release 2 (Karoo)"
        make_provisioner(Platform.AMAZON, "amzn").run()
        ids = mock_adapter.executed_ids
        assert ids.index("refresh_repositories") < ids.index("probe.release_descriptor")
        assert ids.index("probe.release_descriptor") < ids.index("install_runtime")

    def test_unknown_generation(self, make_provisioner, host, mock_adapter):
        host.release = "Amazon Linux AMI release 2018.03"
        report = make_provisioner(Platform.AMAZON, "amzn").run()

        resolve = outcome_for(report, Step.RESOLVE_INSTALL_COMMAND)
        assert resolve.result == ActionResult.FAILED_FATAL
        assert resolve.error == ErrorCode.UNSUPPORTED_PLATFORM_VARIANT
        assert "2018.03" in resolve.message
        assert "install_runtime" not in mutating_ids(mock_adapter)

    def test_unreadable_descriptor(self, make_provisioner, host):
        report = make_provisioner(Platform.AMAZON, "amzn").run()
        resolve = outcome_for(report, Step.RESOLVE_INSTALL_COMMAND)
        assert resolve.error == ErrorCode.UNSUPPORTED_PLATFORM_VARIANT
        assert "/etc/system-release" in resolve.message


class TestFailureClasses:
    def test_install_failure_halts_subflow(self, make_provisioner, host, mock_adapter):
        mock_adapter.set_failure("install_runtime", error="E: Unable to locate package", return_code=100)
        report = make_provisioner().run()

        install = outcome_for(report, Step.INSTALL_RUNTIME)
        assert install.result == ActionResult.FAILED_FATAL
        assert install.error == ErrorCode.RUNTIME_INSTALL_FAILED
        assert install.stderr == "E: Unable to locate package"
        assert mutating_ids(mock_adapter) == [
            "refresh_repositories",
            "install_runtime",
            "install_compose",
        ]
        assert report.status == "failed"

    def test_service_start_failure_is_reported(self, make_provisioner, host, mock_adapter):
        mock_adapter.set_failure("start_service", error="Failed to enable unit")
        report = make_provisioner().run()

        start = outcome_for(report, Step.START_SERVICE)
        assert start.result == ActionResult.FAILED_REPORTED
        assert start.error == ErrorCode.SERVICE_START_FAILED
        assert mutating_ids(mock_adapter) == MUTATING_SEQUENCE
        assert report.status == "partial"

    def test_identity_failure_halts_subflow(self, make_provisioner, host, mock_adapter):
        host.user = None
        report = make_provisioner().run()

        identity = outcome_for(report, Step.RESOLVE_IDENTITY)
        assert identity.fatal
        assert identity.error == ErrorCode.IDENTITY_RESOLUTION_FAILED
        assert "grant_group" not in mutating_ids(mock_adapter)
        assert "restart_service" not in mutating_ids(mock_adapter)
        assert "install_compose" in mutating_ids(mock_adapter)
        assert not report.final.user_authorized

    def test_group_grant_failure_is_reported(self, make_provisioner, host, mock_adapter):
        mock_adapter.set_failure("grant_group", error="usermod: group 'docker' does not exist")
        report = make_provisioner().run()

        grant = outcome_for(report, Step.GRANT_GROUP)
        assert grant.result == ActionResult.FAILED_REPORTED
        assert grant.error == ErrorCode.GROUP_GRANT_FAILED
        assert report.manual_actions == []
        assert "restart_service" in mutating_ids(mock_adapter)

    def test_restart_failure_is_reported(self, make_provisioner, host, mock_adapter):
        mock_adapter.set_failure("restart_service")
        report = make_provisioner().run()
        assert outcome_for(report, Step.RESTART_SERVICE).error == ErrorCode.SERVICE_RESTART_FAILED
        assert report.status == "partial"

    def test_reported_failures_are_aggregated(self, make_provisioner, host, mock_adapter):
        mock_adapter.set_failure("start_service")
        mock_adapter.set_failure("restart_service")
        report = make_provisioner().run()
        assert [s.step for s in report.reported_failures] == [
            Step.START_SERVICE,
            Step.RESTART_SERVICE,
        ]


# ── Sub-flow B: runtime present ─────────────────────────────────────


class TestReconcile:
    def test_provisioned_host_is_only_verified(self, make_provisioner, host, mock_adapter):
        host.provision_fully()
        report = make_provisioner().run()

        assert mock_adapter.mutating_calls == []
        assert report.steps == []
        assert report.manual_actions == []
        assert report.status == "ok"
        assert report.final.all_satisfied

    def test_inactive_service_is_started(self, make_provisioner, host, mock_adapter):
        host.provision_fully()
        host.service_active = False
        report = make_provisioner().run()

        assert mutating_ids(mock_adapter) == ["start_service"]
        assert outcome_for(report, Step.START_SERVICE).result == ActionResult.SUCCEEDED

    def test_start_failure_does_not_halt(self, make_provisioner, host, mock_adapter):
        host.provision_fully()
        host.service_active = False
        host.groups = ["alice"]
        mock_adapter.set_failure("start_service")
        report = make_provisioner().run()

        assert mutating_ids(mock_adapter) == ["start_service", "grant_group"]
        assert report.status == "partial"

    def test_missing_group_is_granted(self, make_provisioner, host, mock_adapter):
        host.provision_fully()
        host.groups = ["alice", "wheel"]
        report = make_provisioner().run()

        assert mutating_ids(mock_adapter) == ["grant_group"]
        assert len(report.manual_actions) == 1
        assert report.final.user_authorized

    def test_no_refresh_or_install(self, make_provisioner, host, mock_adapter):
        host.runtime_installed = True
        make_provisioner().run()
        ids = mutating_ids(mock_adapter)
        assert "refresh_repositories" not in ids
        assert "install_runtime" not in ids
        assert "restart_service" not in ids

    def test_identity_failure_halts_only_subflow(self, make_provisioner, host, mock_adapter):
        host.runtime_installed = True
        host.service_active = True
        host.user = None
        report = make_provisioner().run()

        assert outcome_for(report, Step.RESOLVE_IDENTITY).fatal
        assert mutating_ids(mock_adapter) == ["install_compose"]


# ── Compose reconciliation ──────────────────────────────────────────


class TestCompose:
    def test_installed_for_detected_architecture(self, make_provisioner, host, mock_adapter):
        host.provision_fully()
        host.compose_installed = False
        host.machine = "aarch64"
        report = make_provisioner().run()

        install = outcome_for(report, Step.INSTALL_COMPOSE)
        assert install.result == ActionResult.SUCCEEDED
        assert "releases/latest/download/docker-compose-linux-aarch64" in install.command
        assert install.command.startswith("mkdir -p /usr/local/lib/docker/cli-plugins")

    def test_armv7_alias(self, make_provisioner, host):
        host.provision_fully()
        host.compose_installed = False
        host.machine = "armv7l"
        report = make_provisioner().run()
        assert outcome_for(report, Step.INSTALL_COMPOSE).command.count("linux-armv7 ") == 1

    def test_corrupt_download_is_a_failure(self, make_provisioner, host):
        host.provision_fully()
        host.compose_installed = False
        host.compose_corrupt = True
        report = make_provisioner().run()

        install = outcome_for(report, Step.INSTALL_COMPOSE)
        assert install.result == ActionResult.FAILED_REPORTED
        assert install.error == ErrorCode.COMPOSE_PLUGIN_INSTALL_FAILED
        assert "still not available" in install.message
        assert report.status == "partial"

    def test_reprobe_decides_success(self, make_provisioner, host, mock_adapter):
        host.provision_fully()
        host.compose_installed = False

        def flaky_pipeline(ctx):
            host.compose_installed = True
            return Receipt.failure(
                adapter="shell", action_id=ctx.action.id, error="chmod: warning", return_code=1
            )

        mock_adapter.set_handler("install_compose", flaky_pipeline)
        report = make_provisioner().run()
        assert outcome_for(report, Step.INSTALL_COMPOSE).result == ActionResult.SUCCEEDED

    def test_download_failure(self, make_provisioner, host, mock_adapter):
        host.provision_fully()
        host.compose_installed = False
        mock_adapter.set_failure("install_compose", error="curl: (22) 404", return_code=22)
        report = make_provisioner().run()

        install = outcome_for(report, Step.INSTALL_COMPOSE)
        assert install.reported
        assert install.return_code == 22
        assert "curl: (22) 404" in install.message

    def test_architecture_failure(self, make_provisioner, host, mock_adapter):
        host.provision_fully()
        host.compose_installed = False
        host.machine = None
        report = make_provisioner().run()

        detect = outcome_for(report, Step.DETECT_ARCHITECTURE)
        assert detect.fatal
        assert detect.error == ErrorCode.ARCHITECTURE_DETECTION_FAILED
        assert mock_adapter.mutating_calls == []

    def test_runs_after_fatal_subflow(self, make_provisioner, host, mock_adapter):
        mock_adapter.set_failure("refresh_repositories")
        make_provisioner().run()
        assert mutating_ids(mock_adapter)[-1] == "install_compose"


# ── Dry-run, idempotence, progress ──────────────────────────────────


class TestDryRun:
    def test_no_mutating_command_runs(self, make_provisioner, host, mock_adapter):
        report = make_provisioner(dry_run=True).run()

        assert mock_adapter.mutating_calls == []
        assert report.dry_run
        assert [s.step for s in report.corrective_steps] == [Step(i) for i in MUTATING_SEQUENCE]
        assert all(s.result == ActionResult.SKIPPED for s in report.steps)
        assert not host.runtime_installed
        assert report.manual_actions == []

    def test_probes_still_run(self, make_provisioner, host, mock_adapter):
        make_provisioner(dry_run=True).run()
        assert "probe.runtime_installed" in mock_adapter.executed_ids
        assert "probe.invoking_user" in mock_adapter.executed_ids
        assert "probe.architecture" in mock_adapter.executed_ids


class TestIdempotence:
    def test_second_run_only_verifies(self, make_provisioner, host, mock_adapter):
        first = make_provisioner().run()
        assert first.final.all_satisfied
        mutations_after_first = len(mock_adapter.mutating_calls)

        second = make_provisioner().run()
        assert len(mock_adapter.mutating_calls) == mutations_after_first
        assert second.steps == []
        assert second.status == "ok"

    def test_resumes_after_partial_run(self, make_provisioner, host, mock_adapter):
        mock_adapter.set_failure("grant_group")
        first = make_provisioner().run()
        assert first.status == "partial"
        assert "docker" not in host.groups

        # The transient failure clears; only the missing grant is redone
        mock_adapter.set_handler("grant_group", host._grant_group)
        before = len(mock_adapter.mutating_calls)
        second = make_provisioner().run()

        assert mutating_ids(mock_adapter)[before:] == ["grant_group"]
        assert second.status == "ok"
        assert second.final.all_satisfied


class TestProgress:
    def test_status_lines(self, make_provisioner, host):
        events = []
        make_provisioner(on_progress=lambda t, s, m: events.append((t, s, m))).run()

        assert events[0] == ("runtime", "missing", "docker not found, proceeding to install it")
        assert ("grant_group", "notice", "NOTE: Log out and back in for the group change to take effect") in events
        assert any(s == "done" and t == "install_compose" for t, s, _ in events)

    def test_found_lines_on_provisioned_host(self, make_provisioner, host):
        host.provision_fully()
        events = []
        make_provisioner(on_progress=lambda t, s, m: events.append((t, s))).run()
        assert ("runtime", "found") in events
        assert ("start_service", "found") in events
        assert ("grant_group", "found") in events
        assert ("install_compose", "found") in events
        assert all(s in ("found", "started") for _, s in events)

    def test_identity_line(self, make_provisioner, host):
        events = []
        make_provisioner(on_progress=lambda t, s, m: events.append((t, s, m))).run()
        assert ("resolve_identity", "found", "Running as 'alice'") in events
