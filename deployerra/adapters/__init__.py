"""Adapters — bindings between the provisioner and the host.

Public re-exports for convenient access.
"""

from deployerra.adapters.base import Adapter, ExecutionContext
from deployerra.adapters.mock import MockAdapter
from deployerra.adapters.registry import AdapterRegistry
from deployerra.adapters.shell.command import ShellCommandAdapter

__all__ = [
    "Adapter",
    "AdapterRegistry",
    "ExecutionContext",
    "MockAdapter",
    "ShellCommandAdapter",
]
