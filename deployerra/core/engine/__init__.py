"""Provisioning engine."""

from deployerra.core.engine.provisioner import ProgressCallback, Provisioner

__all__ = ["ProgressCallback", "Provisioner"]
