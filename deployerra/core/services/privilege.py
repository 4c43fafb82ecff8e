"""
Privilege verifier — can this process mutate the host?

The probe is an elevated no-op (``true``). Through the shell adapter it
becomes ``sudo -n sh -c true``: non-interactive, never prompts, never
waits on a terminal. As root it runs without sudo at all.
"""

from __future__ import annotations

import logging

from deployerra.adapters.registry import AdapterRegistry
from deployerra.core.errors import PrivilegeDenied, RequiresPassword
from deployerra.core.models.action import Action, Receipt
from deployerra.core.models.platform import PrivilegeState

logger = logging.getLogger(__name__)

PROBE_ID = "privilege.probe"


def interpret_probe(receipt: Receipt) -> PrivilegeState:
    """Map an elevation probe receipt to a privilege state.

    A "password" diagnostic wins over the exit status: sudo may exit
    non-zero for several reasons, but only that text means a credential
    would help.
    """
    diagnostic = f"{receipt.stderr}\n{receipt.error or ''}".lower()
    if "password" in diagnostic:
        return PrivilegeState.REQUIRES_PASSWORD
    if receipt.ok:
        return PrivilegeState.AVAILABLE
    return PrivilegeState.DENIED


def check_privilege(registry: AdapterRegistry) -> PrivilegeState:
    """Issue the non-interactive elevation probe."""
    receipt = registry.execute_action(
        Action(id=PROBE_ID, name="Elevation probe", command="true", elevated=True)
    )
    state = interpret_probe(receipt)
    logger.info("Privilege probe: %s", state)
    return state


def require_privilege(registry: AdapterRegistry, password: str | None = None) -> PrivilegeState:
    """Make sure elevated actions can run, using a password if one is given.

    When passwordless elevation is unavailable and a password was
    supplied, it is handed to the adapters and the probe is repeated
    with ``sudo -S``. A wrong password keeps the state at
    REQUIRES_PASSWORD.

    Raises:
        RequiresPassword: Elevation needs a (correct) password.
        PrivilegeDenied: Elevation is not possible for this user.
    """
    state = check_privilege(registry)

    if state == PrivilegeState.REQUIRES_PASSWORD and password:
        logger.info("Retrying elevation probe with the supplied password")
        registry.set_credential(password)
        state = check_privilege(registry)
        if state != PrivilegeState.AVAILABLE:
            registry.set_credential("")
            if state == PrivilegeState.REQUIRES_PASSWORD:
                raise RequiresPassword("The supplied sudo password was not accepted.")

    if state == PrivilegeState.REQUIRES_PASSWORD:
        raise RequiresPassword()
    if state == PrivilegeState.DENIED:
        raise PrivilegeDenied()
    return state
