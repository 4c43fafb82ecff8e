"""
Action and Receipt models — the command execution contract.

Actions represent requested host commands. Receipts represent results.
This is the fundamental I/O contract between the engine and adapters:
the engine sends Actions, adapters return Receipts. Never exceptions.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class Action(BaseModel):
    """A single host command to be executed by an adapter.

    ``elevated`` commands are written without ``sudo``; the adapter
    decides how to elevate them. ``mutating`` marks commands that change
    host state, which dry-run mode never executes.
    """

    id: str                         # step or probe identifier
    command: str                    # POSIX shell command line
    name: str = ""                  # human-readable name
    adapter: str = "shell"          # which adapter handles this
    elevated: bool = False
    mutating: bool = False


class Receipt(BaseModel):
    """Result of an adapter execution.

    Receipts capture the full outcome of a command: exit status plus
    both output streams. The adapter NEVER raises exceptions — failures
    are captured here.
    """

    adapter: str
    action_id: str
    status: Literal["ok", "skipped", "failed"] = "ok"

    started_at: str = Field(default_factory=_now_iso)
    ended_at: str = Field(default_factory=_now_iso)
    duration_ms: int = 0

    return_code: int | None = None   # None when the command never ran
    stdout: str = ""
    stderr: str = ""
    error: str | None = None

    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        """Whether the command exited successfully."""
        return self.status == "ok"

    @property
    def failed(self) -> bool:
        """Whether the command failed or could not run."""
        return self.status == "failed"

    @property
    def skipped(self) -> bool:
        return self.status == "skipped"

    @classmethod
    def success(
        cls,
        adapter: str,
        action_id: str,
        stdout: str = "",
        **kwargs: Any,
    ) -> Receipt:
        """Create a success receipt."""
        kwargs.setdefault("return_code", 0)
        return cls(
            adapter=adapter,
            action_id=action_id,
            status="ok",
            stdout=stdout,
            **kwargs,
        )

    @classmethod
    def failure(
        cls,
        adapter: str,
        action_id: str,
        error: str,
        **kwargs: Any,
    ) -> Receipt:
        """Create a failure receipt."""
        return cls(
            adapter=adapter,
            action_id=action_id,
            status="failed",
            error=error,
            **kwargs,
        )

    @classmethod
    def skip(
        cls,
        adapter: str,
        action_id: str,
        reason: str = "",
        **kwargs: Any,
    ) -> Receipt:
        """Create a skip receipt."""
        return cls(
            adapter=adapter,
            action_id=action_id,
            status="skipped",
            stdout=reason,
            **kwargs,
        )
