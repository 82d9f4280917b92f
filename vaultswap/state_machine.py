from __future__ import annotations

from typing import Dict, Set

from vaultswap.enums import EscrowStatus
from vaultswap.errors import InvalidTransition


ALLOWED_TRANSITIONS: Dict[EscrowStatus, Set[EscrowStatus]] = {
    EscrowStatus.OPEN: {EscrowStatus.SETTLED, EscrowStatus.REFUNDED},
    EscrowStatus.SETTLED: set(),
    EscrowStatus.REFUNDED: set(),
}


def validate_transition(current: EscrowStatus, target: EscrowStatus) -> None:
    if target not in ALLOWED_TRANSITIONS.get(current, set()):
        raise InvalidTransition(f"Invalid transition {current.value} -> {target.value}")


def is_terminal(status: EscrowStatus) -> bool:
    return not ALLOWED_TRANSITIONS.get(status)
