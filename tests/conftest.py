"""
Shared test fixtures and configuration.

``FakeHost`` scripts the MockAdapter so that probes read, and corrective
actions change, one small in-memory host. Provisioning logic can then be
exercised end to end without running a single real command.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from deployerra.adapters.base import ExecutionContext
from deployerra.adapters.mock import MockAdapter
from deployerra.adapters.registry import AdapterRegistry
from deployerra.core.config import loader
from deployerra.core.config.loader import load_config
from deployerra.core.engine.provisioner import Provisioner
from deployerra.core.models.action import Receipt
from deployerra.core.models.config import ProvisionerConfig
from deployerra.core.models.platform import HostIdentity, Platform
from deployerra.core.observability import logging_config


class FakeHost:
    """In-memory host behind a MockAdapter.

    Attributes can be changed at any time; every handler reads them at
    call time, just as every probe re-reads the real host.
    """

    def __init__(self, mock: MockAdapter):
        self.mock = mock
        self.runtime_installed = False
        self.service_active = False
        self.user: str | None = "alice"
        self.groups = ["alice"]
        self.compose_installed = False
        self.machine: str | None = "x86_64"
        self.release: str | None = None

        # Privilege: None means passwordless sudo works
        self.sudo_password: str | None = None
        self.sudo_denied = False

        # Exit code of the repository refresh
        self.refresh_code = 0
        # Compose download "succeeds" but leaves an unusable binary
        self.compose_corrupt = False
        # An unusable plugin binary is present
        self.compose_broken = False

        handlers = {
            "privilege.probe": self._privilege,
            "probe.runtime_installed": self._probe_runtime,
            "probe.service_active": self._probe_service,
            "probe.user_authorized": self._probe_groups,
            "probe.compose_installed": self._probe_compose,
            "probe.invoking_user": self._probe_user,
            "probe.architecture": self._probe_arch,
            "probe.release_descriptor": self._probe_release,
            "refresh_repositories": self._refresh,
            "install_runtime": self._install_runtime,
            "start_service": self._start_service,
            "grant_group": self._grant_group,
            "restart_service": self._ok,
            "install_compose": self._install_compose,
        }
        for action_id, handler in handlers.items():
            mock.set_handler(action_id, handler)

    # ── Receipt helpers ─────────────────────────────────────────

    def _ok(self, ctx: ExecutionContext, stdout: str = "") -> Receipt:
        return Receipt.success(adapter="shell", action_id=ctx.action.id, stdout=stdout)

    def _fail(
        self,
        ctx: ExecutionContext,
        return_code: int = 1,
        stderr: str = "",
        stdout: str = "",
    ) -> Receipt:
        return Receipt.failure(
            adapter="shell",
            action_id=ctx.action.id,
            error=stderr or f"Command exited with code {return_code}",
            return_code=return_code,
            stdout=stdout,
            stderr=stderr,
        )

    # ── Privilege ───────────────────────────────────────────────

    def _privilege(self, ctx: ExecutionContext) -> Receipt:
        if self.sudo_denied:
            return self._fail(ctx, stderr="alice is not in the sudoers file.")
        if self.sudo_password is None:
            return self._ok(ctx)
        if not self.mock.credential:
            return self._fail(ctx, stderr="sudo: a password is required")
        if self.mock.credential == self.sudo_password:
            return self._ok(ctx)
        return self._fail(ctx, stderr="Sorry, try again.\nsudo: 1 incorrect password attempt")

    # ── Probes ──────────────────────────────────────────────────

    def _probe_runtime(self, ctx: ExecutionContext) -> Receipt:
        if self.runtime_installed:
            return self._ok(ctx, "/usr/bin/docker")
        return self._fail(ctx)

    def _probe_service(self, ctx: ExecutionContext) -> Receipt:
        if self.service_active:
            return self._ok(ctx, "active")
        return self._fail(ctx, return_code=3, stdout="inactive")

    def _probe_groups(self, ctx: ExecutionContext) -> Receipt:
        return self._ok(ctx, " ".join(self.groups))

    def _probe_compose(self, ctx: ExecutionContext) -> Receipt:
        if not self.runtime_installed:
            return self._fail(ctx, return_code=127, stderr="sh: docker: not found")
        listing = "Management Commands:\n  builder  Manage builds\n"
        if self.compose_installed:
            listing += "  compose*  Docker Compose\n"
        elif self.compose_broken:
            listing += (
                "\nInvalid Plugins:\n"
                "  compose  failed to fetch metadata: fork/exec "
                "/usr/local/lib/docker/cli-plugins/docker-compose: exec format error\n"
            )
        return self._ok(ctx, listing)

    def _probe_user(self, ctx: ExecutionContext) -> Receipt:
        if self.user is None:
            return self._fail(ctx, stderr="whoami: cannot find name for user ID 1234")
        return self._ok(ctx, self.user)

    def _probe_arch(self, ctx: ExecutionContext) -> Receipt:
        if self.machine is None:
            return self._fail(ctx)
        return self._ok(ctx, self.machine)

    def _probe_release(self, ctx: ExecutionContext) -> Receipt:
        if self.release is None:
            return self._fail(ctx, stderr="cat: /etc/system-release: No such file or directory")
        return self._ok(ctx, self.release)

    # ── Corrective actions ──────────────────────────────────────

    def _refresh(self, ctx: ExecutionContext) -> Receipt:
        if self.refresh_code:
            return self._fail(ctx, return_code=self.refresh_code)
        return self._ok(ctx)

    def _install_runtime(self, ctx: ExecutionContext) -> Receipt:
        self.runtime_installed = True
        return self._ok(ctx)

    def _start_service(self, ctx: ExecutionContext) -> Receipt:
        self.service_active = True
        return self._ok(ctx)

    def _grant_group(self, ctx: ExecutionContext) -> Receipt:
        if "docker" not in self.groups:
            self.groups.append("docker")
        return self._ok(ctx)

    def _install_compose(self, ctx: ExecutionContext) -> Receipt:
        if self.compose_corrupt:
            self.compose_broken = True
        else:
            self.compose_installed = True
        return self._ok(ctx)

    def provision_fully(self) -> FakeHost:
        """Put the host in the fully provisioned state."""
        self.runtime_installed = True
        self.service_active = True
        self.groups = ["alice", "docker"]
        self.compose_installed = True
        return self


@pytest.fixture(autouse=True)
def isolated_cwd(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Run every test in a scratch directory with no system config or log secrets."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(loader, "SYSTEM_CONFIG", tmp_path / "etc" / "deployerra.yml")
    monkeypatch.setattr(logging_config, "_secrets", set())
    return tmp_path


@pytest.fixture
def config() -> ProvisionerConfig:
    """Built-in configuration, without any operator file."""
    return load_config(use_system=False)


@pytest.fixture
def mock_adapter() -> MockAdapter:
    return MockAdapter()


@pytest.fixture
def registry(mock_adapter: MockAdapter) -> AdapterRegistry:
    reg = AdapterRegistry()
    reg.register(mock_adapter)
    return reg


@pytest.fixture
def host(mock_adapter: MockAdapter) -> FakeHost:
    """A bare host: nothing installed, passwordless sudo."""
    return FakeHost(mock_adapter)


@pytest.fixture
def make_provisioner(config: ProvisionerConfig, registry: AdapterRegistry):
    """Factory for a Provisioner on a given distro."""

    def _make(
        platform: Platform = Platform.DEBIAN,
        distro_id: str = "ubuntu",
        dry_run: bool = False,
        on_progress=None,
    ) -> Provisioner:
        identity = HostIdentity(platform=platform, distro_id=distro_id)
        return Provisioner(
            host=identity,
            config=config,
            registry=registry,
            dry_run=dry_run,
            on_progress=on_progress,
        )

    return _make


@pytest.fixture
def write_os_release(tmp_path: Path):
    """Write an os-release file and return its path."""

    def _write(content: str) -> Path:
        path = tmp_path / "os-release"
        path.write_text(content, encoding="utf-8")
        return path

    return _write
