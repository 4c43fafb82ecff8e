"""
Shell command adapter — execute host commands.

This is the SINGLE PLACE where ``subprocess.run`` is called. Every
probe and every corrective action goes through here, one at a time.

Elevation invariants:
- Elevated commands are wrapped as ``sudo -n sh -c <cmd>`` so sudo
  never prompts.
- With a credential, ``sudo -S -k`` is used and the password is piped
  via stdin only. It never appears in argv and is never logged.
- When already root, no sudo prefix is added.
"""

from __future__ import annotations

import logging
import os
import subprocess
import time

from deployerra.adapters.base import Adapter, ExecutionContext
from deployerra.core.models.action import Action, Receipt

logger = logging.getLogger(__name__)


class ShellCommandAdapter(Adapter):
    """Run command lines through ``sh -c`` and capture exit status and output.

    Args:
        timeout: Seconds before a command is abandoned. ``None`` waits
            for the command to finish, however long it takes.
        shell: The POSIX shell used to interpret command lines.
    """

    def __init__(self, timeout: int | None = None, shell: str = "sh"):
        self._timeout = timeout
        self._shell = shell
        self._sudo_password = ""

    @property
    def name(self) -> str:
        return "shell"

    def set_credential(self, password: str) -> None:
        self._sudo_password = password

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        if not context.command.strip():
            return False, "Missing required field: 'command'"
        return True, ""

    def build_argv(self, action: Action) -> list[str]:
        """Translate an action into the argv actually executed."""
        argv = [self._shell, "-c", action.command]
        if not action.elevated or os.geteuid() == 0:
            return argv
        if self._sudo_password:
            return ["sudo", "-S", "-k", "-p", "", *argv]
        return ["sudo", "-n", *argv]

    def execute(self, context: ExecutionContext) -> Receipt:
        action = context.action
        argv = self.build_argv(action)
        stdin_data = (self._sudo_password + "\n") if argv[:2] == ["sudo", "-S"] else None

        logger.debug(
            "Executing: %s (elevated=%s, mutating=%s)",
            action.command, action.elevated, action.mutating,
        )
        start = time.monotonic()

        try:
            result = subprocess.run(
                argv,
                capture_output=True,
                text=True,
                errors="replace",
                timeout=self._timeout,
                input=stdin_data,
            )
        except subprocess.TimeoutExpired:
            return Receipt.failure(
                adapter=self.name,
                action_id=action.id,
                error=f"Command timed out after {self._timeout}s",
                metadata={"command": action.command, "timeout": self._timeout},
            )
        except Exception as e:
            logger.debug("Command could not be started: %s", action.command, exc_info=True)
            return Receipt.failure(
                adapter=self.name,
                action_id=action.id,
                error=f"Command execution error: {e}",
                metadata={"command": action.command},
            )

        elapsed_ms = int((time.monotonic() - start) * 1000)
        stdout = result.stdout.strip()
        stderr = result.stderr.strip()
        logger.debug("Exit %d from %s", result.returncode, action.id)

        if result.returncode == 0:
            return Receipt.success(
                adapter=self.name,
                action_id=action.id,
                stdout=stdout,
                stderr=stderr,
                duration_ms=elapsed_ms,
                metadata={"command": action.command},
            )

        return Receipt.failure(
            adapter=self.name,
            action_id=action.id,
            error=stderr or f"Command exited with code {result.returncode}",
            return_code=result.returncode,
            stdout=stdout,
            stderr=stderr,
            duration_ms=elapsed_ms,
            metadata={"command": action.command},
        )
