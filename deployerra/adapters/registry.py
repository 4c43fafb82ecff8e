"""
Adapter registry — central dispatch for all command execution.

The registry is the single point of adapter management. It handles
registration, dry-run, and action execution. The provisioner
never talks to adapters directly — always through the registry.
"""

from __future__ import annotations

import logging
import time
from deployerra.adapters.base import Adapter, ExecutionContext
from deployerra.core.models.action import Action, Receipt

logger = logging.getLogger(__name__)


class AdapterRegistry:
    """Central registry and dispatcher for adapters.

    Features:
        - Register adapters by name
        - Execute actions through the appropriate adapter
        - Dry-run: mutating actions are validated but never executed
        - Hand a sudo credential to every adapter
    """

    def __init__(self) -> None:
        self._adapters: dict[str, Adapter] = {}

    def register(self, adapter: Adapter) -> None:
        name = adapter.name
        if name in self._adapters:
            logger.warning("Overwriting existing adapter: %s", name)
        self._adapters[name] = adapter
        logger.debug("Registered adapter: %s", name)

    def set_credential(self, password: str) -> None:
        """Pass a sudo password to every registered adapter."""
        for adapter in self._adapters.values():
            adapter.set_credential(password)

    def execute_action(self, action: Action, dry_run: bool = False) -> Receipt:
        """Execute an action through the appropriate adapter.

        This is the main dispatch method. It:
        1. Resolves the adapter
        2. Validates the action
        3. Executes it (or, for mutating actions in dry-run, skips it)
        4. Returns a Receipt (never raises)

        Read-only actions run even in dry-run so that decisions are
        still based on live host state.
        """
        start_time = time.monotonic()
        context = ExecutionContext(action=action, dry_run=dry_run)

        adapter = self._adapters.get(action.adapter)
        if adapter is None:
            return Receipt.failure(
                adapter=action.adapter,
                action_id=action.id,
                error=f"No adapter registered for '{action.adapter}'",
            )

        # Validate
        try:
            is_valid, error_msg = adapter.validate(context)
        except Exception as e:
            return Receipt.failure(
                adapter=action.adapter,
                action_id=action.id,
                error=f"Validation error: {e}",
            )
        if not is_valid:
            return Receipt.failure(
                adapter=action.adapter,
                action_id=action.id,
                error=f"Validation failed: {error_msg}",
            )

        # Dry run — validated but not executed
        if dry_run and action.mutating:
            logger.info("[dry-run] would run %s: %s", action.id, action.command)
            return Receipt.skip(
                adapter=action.adapter,
                action_id=action.id,
                reason=f"[dry-run] Would execute: {action.command}",
                metadata={"dry_run": True},
            )

        # Execute
        try:
            receipt = adapter.execute(context)
        except Exception as e:
            # Adapters should never raise
            logger.error("Adapter %s raised during execution: %s", action.adapter, e)
            receipt = Receipt.failure(
                adapter=action.adapter,
                action_id=action.id,
                error=f"Unexpected error: {e}",
            )

        receipt.duration_ms = int((time.monotonic() - start_time) * 1000)
        return receipt
