"""
Distro classifier — map the host's os-release ID to a platform family.

Only the ``ID`` key is consulted. Classification happens once; the
resulting HostIdentity is immutable for the rest of the run.
"""

from __future__ import annotations

import logging
from pathlib import Path

from deployerra.core.errors import UnreadableIdentitySource, UnsupportedDistro
from deployerra.core.models.config import ProvisionerConfig
from deployerra.core.models.platform import HostIdentity

logger = logging.getLogger(__name__)

OS_RELEASE = Path("/etc/os-release")


def parse_distro_id(content: str) -> str | None:
    """Extract the ``ID`` value from os-release text.

    The key match is case-sensitive (``ID_LIKE`` and ``VERSION_ID`` are
    different keys). Surrounding whitespace and quotes are stripped.
    """
    for line in content.splitlines():
        if line.startswith("ID="):
            value = line[len("ID="):].strip().strip("\"'")
            return value or None
    return None


def read_distro_id(path: Path = OS_RELEASE) -> str:
    """Read the raw distro id from an os-release file.

    Raises:
        UnreadableIdentitySource: The file cannot be read or has no ID.
    """
    try:
        content = path.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        raise UnreadableIdentitySource(str(path), str(e)) from e

    distro_id = parse_distro_id(content)
    if distro_id is None:
        raise UnreadableIdentitySource(str(path), "no ID key")
    return distro_id


def classify_host(config: ProvisionerConfig, path: Path = OS_RELEASE) -> HostIdentity:
    """Classify the host into one of the supported platforms.

    Raises:
        UnreadableIdentitySource: The identity record is unusable.
        UnsupportedDistro: The ID is not in any platform's table.
    """
    distro_id = read_distro_id(path)
    platform = config.platform_for(distro_id)
    if platform is None:
        raise UnsupportedDistro(distro_id)

    host = HostIdentity(platform=platform, distro_id=distro_id)
    logger.info("Supported distro detected: %s", host)
    return host
