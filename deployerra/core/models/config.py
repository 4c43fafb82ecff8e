"""
Configuration models — the immutable provisioning tables.

Built once at startup from ``core/data/platforms.yml`` (plus an optional
operator file) and passed explicitly to the services that need it.
"""

from __future__ import annotations

import shlex
from collections.abc import Mapping
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, PositiveInt, model_validator

from deployerra.core.models.platform import Platform


def _as_pairs(value: Any) -> Any:
    if isinstance(value, Mapping):
        return tuple(value.items())
    return value


# Read-only key → value table, written as a mapping in YAML
LookupTable = Annotated[tuple[tuple[str, str], ...], BeforeValidator(_as_pairs)]


class InstallVariant(BaseModel):
    """One install source chosen by a marker in a release descriptor."""

    model_config = ConfigDict(frozen=True)

    marker: str
    install: str


class PlatformCommands(BaseModel):
    """Command templates for one platform family."""

    model_config = ConfigDict(frozen=True)

    distro_ids: tuple[str, ...]
    refresh: str
    ignorable_refresh_codes: tuple[int, ...] = ()
    install: str | None = None
    install_overrides: LookupTable = ()
    refresh_overrides: LookupTable = ()

    # Platforms whose install source depends on the OS generation
    variant_source: str | None = None
    variants: tuple[InstallVariant, ...] = ()

    @property
    def has_variants(self) -> bool:
        return bool(self.variants)

    def install_for(self, distro_id: str) -> str | None:
        """Fixed install command for a distro, if one is mapped."""
        return dict(self.install_overrides).get(distro_id, self.install)

    def refresh_for(self, distro_id: str) -> str:
        """Repository refresh command for a distro."""
        return dict(self.refresh_overrides).get(distro_id, self.refresh)

    def match_variant(self, descriptor: str) -> InstallVariant | None:
        """First variant whose marker occurs in the release descriptor."""
        for variant in self.variants:
            if variant.marker in descriptor:
                return variant
        return None


class RuntimeSettings(BaseModel):
    """The container runtime being provisioned."""

    model_config = ConfigDict(frozen=True)

    binary: str = "docker"
    service: str = "docker"
    group: str = "docker"
    enable_command: str = "systemctl enable --now {service}"
    restart_command: str = "systemctl restart {service}"
    grant_command: str = "usermod -aG {group} {user}"

    def enable(self) -> str:
        return self.enable_command.format(service=shlex.quote(self.service))

    def restart(self) -> str:
        return self.restart_command.format(service=shlex.quote(self.service))

    def grant(self, user: str) -> str:
        return self.grant_command.format(
            group=shlex.quote(self.group),
            user=shlex.quote(user),
        )


class ComposeSettings(BaseModel):
    """Where the compose plugin comes from and where it goes."""

    model_config = ConfigDict(frozen=True)

    version: str = "latest"
    keyword: str = "compose"
    plugin_dir: str = "/usr/local/lib/docker/cli-plugins"
    url_template: str = (
        "https://github.com/docker/compose/releases/{release}/docker-compose-linux-{arch}"
    )
    arch_aliases: LookupTable = ()

    @property
    def plugin_path(self) -> str:
        return f"{self.plugin_dir.rstrip('/')}/docker-compose"

    def download_url(self, machine: str) -> str:
        """Render the download URL for a ``uname -m`` architecture."""
        arch = dict(self.arch_aliases).get(machine, machine)
        if self.version == "latest":
            release = "latest/download"
        else:
            release = f"download/{self.version}"
        return self.url_template.format(release=release, arch=arch)

    def install_pipeline(self, machine: str) -> str:
        """mkdir + download + chmod, as one command line."""
        plugin_dir = shlex.quote(self.plugin_dir)
        plugin_path = shlex.quote(self.plugin_path)
        url = shlex.quote(self.download_url(machine))
        return (
            f"mkdir -p {plugin_dir} && "
            f"curl -fL {url} -o {plugin_path} && "
            f"chmod +x {plugin_path}"
        )


class ProvisionerConfig(BaseModel):
    """Top-level provisioning configuration."""

    model_config = ConfigDict(frozen=True)

    command_timeout: PositiveInt | None = None
    runtime: RuntimeSettings = Field(default_factory=RuntimeSettings)
    compose: ComposeSettings = Field(default_factory=ComposeSettings)
    platforms: dict[Platform, PlatformCommands]

    @model_validator(mode="after")
    def _check_tables(self) -> ProvisionerConfig:
        missing = [p.value for p in Platform if p not in self.platforms]
        if missing:
            raise ValueError(f"No command table for platform(s): {', '.join(missing)}")

        seen: dict[str, Platform] = {}
        for platform, commands in self.platforms.items():
            for distro_id in commands.distro_ids:
                if distro_id in seen:
                    raise ValueError(
                        f"Distro '{distro_id}' claimed by both "
                        f"{seen[distro_id]} and {platform}"
                    )
                seen[distro_id] = platform
            if commands.has_variants and not commands.variant_source:
                raise ValueError(f"{platform}: 'variants' requires 'variant_source'")
        return self

    def platform_for(self, distro_id: str) -> Platform | None:
        """Map a raw os-release ID to its platform family."""
        for platform, commands in self.platforms.items():
            if distro_id in commands.distro_ids:
                return platform
        return None

    def commands_for(self, platform: Platform) -> PlatformCommands:
        return self.platforms[platform]

    def is_ignorable_refresh_failure(self, platform: Platform, exit_code: int | None) -> bool:
        """Whether a non-zero refresh exit code means success on this platform."""
        if exit_code is None:
            return False
        return exit_code in self.platforms[platform].ignorable_refresh_codes
