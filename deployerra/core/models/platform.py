"""
Host models — platform identity and privilege state.

Both are computed once at process start and never change afterwards.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict


class Platform(StrEnum):
    """Supported platform families."""

    DEBIAN = "debian-family"
    REDHAT = "redhat-family"
    AMAZON = "amazon-family"
    ARCH = "arch"


class PrivilegeState(StrEnum):
    """Whether elevated actions may proceed."""

    AVAILABLE = "available"
    REQUIRES_PASSWORD = "requires_password"
    DENIED = "denied"


class HostIdentity(BaseModel):
    """A classified host: its platform family plus the raw ``ID`` value.

    The raw id is kept so that distros sharing a family (fedora, rhel)
    can still receive different install commands.
    """

    model_config = ConfigDict(frozen=True)

    platform: Platform
    distro_id: str

    def __str__(self) -> str:
        return f"{self.distro_id} ({self.platform})"
