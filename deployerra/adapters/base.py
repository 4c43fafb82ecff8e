"""
Adapter base — the protocol contract between engine and host.

This defines the abstract interface that every adapter must implement.
The provisioner only talks to adapters through this protocol, never
directly to ``subprocess``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from pydantic import BaseModel

from deployerra.core.models.action import Action, Receipt


class ExecutionContext(BaseModel):
    """Everything an adapter needs to execute an action."""

    action: Action
    dry_run: bool = False

    @property
    def command(self) -> str:
        return self.action.command


class Adapter(ABC):
    """Abstract base class for all adapters.

    Adapters perform external side effects and return receipts.
    They NEVER raise exceptions — failures are captured in the Receipt.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """The adapter identifier (e.g., 'shell', 'mock')."""

    @abstractmethod
    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        """Validate that the action can be executed.

        Returns:
            (is_valid, error_message). error_message is empty if valid.
        """

    @abstractmethod
    def execute(self, context: ExecutionContext) -> Receipt:
        """Execute the action and return a receipt.

        MUST never raise exceptions. All failures are captured
        in the Receipt with status='failed'.
        """

    def set_credential(self, password: str) -> None:
        """Accept a sudo password. Adapters that cannot elevate ignore it."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
