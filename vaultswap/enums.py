from enum import Enum


class EscrowStatus(str, Enum):
    OPEN = "OPEN"
    SETTLED = "SETTLED"
    REFUNDED = "REFUNDED"


class AuditAction(str, Enum):
    OPEN = "escrow.open"
    SETTLE = "escrow.settle"
    CANCEL = "escrow.cancel"
