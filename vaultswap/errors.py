from __future__ import annotations


class EscrowError(Exception):
    code = "escrow_error"


class InvalidAmount(EscrowError):
    code = "invalid_amount"


class Unauthorized(EscrowError):
    code = "unauthorized"


class AccountMismatch(EscrowError):
    code = "account_mismatch"


class InsufficientFunds(EscrowError):
    code = "insufficient_funds"


class NotFound(EscrowError):
    code = "not_found"


class AlreadyInUse(EscrowError):
    code = "already_in_use"


class InvalidTransition(EscrowError):
    code = "invalid_transition"


class DerivationError(EscrowError):
    code = "derivation_error"
