"""
Mock adapter — scripted test double for the command boundary.

Used in tests (and for offline demos) to simulate host behavior without
running anything. Returns success by default; responses can be scripted
per action ID, either as fixed receipts or as handlers that compute a
receipt from the execution context.
"""

from __future__ import annotations

from collections.abc import Callable

from deployerra.adapters.base import Adapter, ExecutionContext
from deployerra.core.models.action import Receipt

Handler = Callable[[ExecutionContext], Receipt]


class MockAdapter(Adapter):
    """Universal mock adapter for testing.

    By default, returns success with ``default_output`` for everything.
    """

    def __init__(
        self,
        adapter_name: str = "shell",
        default_output: str = "",
    ):
        self._name = adapter_name
        self._default_output = default_output
        self._responses: dict[str, Receipt] = {}
        self._handlers: dict[str, Handler] = {}
        self._call_log: list[ExecutionContext] = []
        self.credential = ""

    @property
    def name(self) -> str:
        return self._name

    @property
    def call_log(self) -> list[ExecutionContext]:
        """All execution contexts this mock has received."""
        return self._call_log

    @property
    def call_count(self) -> int:
        """Number of times execute has been called."""
        return len(self._call_log)

    @property
    def executed_ids(self) -> list[str]:
        """Action IDs in execution order."""
        return [ctx.action.id for ctx in self._call_log]

    @property
    def mutating_calls(self) -> list[ExecutionContext]:
        return [ctx for ctx in self._call_log if ctx.action.mutating]

    def set_credential(self, password: str) -> None:
        self.credential = password

    def set_response(self, action_id: str, receipt: Receipt) -> None:
        """Set a fixed response for a specific action ID."""
        self._handlers.pop(action_id, None)
        self._responses[action_id] = receipt

    def set_output(self, action_id: str, stdout: str) -> None:
        """Configure a specific action to succeed with the given stdout."""
        self.set_response(
            action_id,
            Receipt.success(adapter=self._name, action_id=action_id, stdout=stdout),
        )

    def set_failure(
        self,
        action_id: str,
        error: str = "Mock failure",
        return_code: int = 1,
        stderr: str = "",
    ) -> None:
        """Configure a specific action to fail."""
        self.set_response(
            action_id,
            Receipt.failure(
                adapter=self._name,
                action_id=action_id,
                error=error,
                return_code=return_code,
                stderr=stderr or error,
            ),
        )

    def set_handler(self, action_id: str, handler: Handler) -> None:
        """Compute the response for an action ID at call time."""
        self._responses.pop(action_id, None)
        self._handlers[action_id] = handler

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        self._call_log.append(context)
        action_id = context.action.id

        if action_id in self._handlers:
            return self._handlers[action_id](context)
        if action_id in self._responses:
            return self._responses[action_id]

        return Receipt.success(
            adapter=self._name,
            action_id=action_id,
            stdout=self._default_output,
            metadata={"mock": True},
        )

    def reset(self) -> None:
        """Clear call log and scripted responses."""
        self._call_log.clear()
        self._responses.clear()
        self._handlers.clear()
        self.credential = ""
