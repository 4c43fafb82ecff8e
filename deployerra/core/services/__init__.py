"""
Host services — privilege, classification, and capability probes.

These READ host state but never WRITE it.
"""

from deployerra.core.services.distro import classify_host, parse_distro_id, read_distro_id
from deployerra.core.services.privilege import check_privilege, require_privilege
from deployerra.core.services.probes import CapabilityProber

__all__ = [
    "CapabilityProber",
    "check_privilege",
    "classify_host",
    "parse_distro_id",
    "read_distro_id",
    "require_privilege",
]
