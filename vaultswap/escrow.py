"""Open, settle and cancel flows for a single maker/taker escrow.

Each flow assumes it runs inside one ledger transaction: any exception raised
here aborts the command and the caller's transaction discards every write made
so far. Nothing in this module catches an error.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from vaultswap.amounts import MAX_UNITS
from vaultswap.derivation import CustodialSigner, WalletSigner, escrow_seeds, verify_escrow_address
from vaultswap.enums import AuditAction, EscrowStatus
from vaultswap.errors import AccountMismatch, DerivationError, InvalidAmount, Unauthorized
from vaultswap.ledger import Ledger
from vaultswap.state import EscrowState
from vaultswap.state_machine import validate_transition

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OpenedEscrow:
    escrow: str
    vault: str
    bump: int


@dataclass(frozen=True)
class ClosedEscrow:
    escrow: str
    status: EscrowStatus
    released: int
    paid: int
    reserves_returned: int


@dataclass(frozen=True)
class EscrowView:
    address: str
    seed: int
    maker: str
    mint_a: str
    mint_b: str
    receive: int
    bump: int
    vault: str
    vault_balance: int
    status: EscrowStatus = EscrowStatus.OPEN


def _require_match(label: str, supplied: str | None, expected: str) -> None:
    if supplied is not None and supplied != expected:
        raise AccountMismatch(f"{label} {supplied} does not match {expected}")


async def _verify_accounts(
    ledger: Ledger,
    address: str,
    state: EscrowState,
    mint_a: str | None = None,
    mint_b: str | None = None,
    vault: str | None = None,
) -> str:
    """Re-check every cross reference of a loaded record; returns the vault address."""
    verify_escrow_address(address, state.maker, state.seed, state.bump, ledger.program_id)
    _require_match("mint_a", mint_a, state.mint_a)
    _require_match("mint_b", mint_b, state.mint_b)
    expected_vault = ledger.associated_address(address, state.mint_a)
    _require_match("vault", vault, expected_vault)
    holding = await ledger.get_account(expected_vault)
    if holding.owner != address:
        raise AccountMismatch(f"Vault {expected_vault} is owned by {holding.owner}, not {address}")
    if holding.asset != state.mint_a:
        raise AccountMismatch(f"Vault {expected_vault} holds {holding.asset}, not {state.mint_a}")
    return expected_vault


async def open_escrow(
    ledger: Ledger,
    maker: str,
    seed: int,
    receive: int,
    deposit: int,
    mint_a: str,
    mint_b: str,
    vault: str | None = None,
) -> OpenedEscrow:
    if not 0 < receive <= MAX_UNITS:
        raise InvalidAmount(f"receive must be positive, got {receive}")
    if not 0 < deposit <= MAX_UNITS:
        raise InvalidAmount(f"deposit must be positive, got {deposit}")
    if not 0 <= seed <= MAX_UNITS:
        raise DerivationError(f"seed {seed} out of range")

    await ledger.get_asset(mint_a)
    await ledger.get_asset(mint_b)

    escrow, bump = ledger.derive_address(escrow_seeds(maker, seed))
    expected_vault = ledger.associated_address(escrow, mint_a)
    _require_match("vault", vault, expected_vault)

    state = EscrowState(seed=seed, maker=maker, mint_a=mint_a, mint_b=mint_b, receive=receive, bump=bump)
    await ledger.create_record(escrow, state, payer=maker)
    vault_address = await ledger.create_account(owner=escrow, asset=mint_a, payer=maker)
    maker_ata_a = ledger.associated_address(maker, mint_a)
    await ledger.transfer(maker_ata_a, vault_address, WalletSigner(maker), deposit, mint_a)

    await ledger.log_event(
        AuditAction.OPEN.value,
        escrow,
        maker,
        {"seed": seed, "receive": receive, "deposit": deposit, "mint_a": mint_a, "mint_b": mint_b},
    )
    logger.info("escrow opened %s maker=%s deposit=%s receive=%s", escrow, maker, deposit, receive)
    return OpenedEscrow(escrow=escrow, vault=vault_address, bump=bump)


async def settle_escrow(
    ledger: Ledger,
    taker: str,
    escrow: str,
    mint_a: str | None = None,
    mint_b: str | None = None,
    vault: str | None = None,
) -> ClosedEscrow:
    state = await ledger.load_record(escrow)
    vault_address = await _verify_accounts(ledger, escrow, state, mint_a=mint_a, mint_b=mint_b, vault=vault)

    maker_ata_b = await ledger.get_or_create_account(state.maker, state.mint_b, payer=taker)
    taker_ata_a = await ledger.get_or_create_account(taker, state.mint_a, payer=taker)
    taker_ata_b = ledger.associated_address(taker, state.mint_b)

    # Pay the maker first; an under-funded taker aborts before the vault is touched.
    await ledger.transfer(taker_ata_b, maker_ata_b, WalletSigner(taker), state.receive, state.mint_b)

    with CustodialSigner.for_escrow(state.maker, state.seed, state.bump, ledger.program_id) as authority:
        released = await ledger.balance_of(vault_address)
        await ledger.transfer(vault_address, taker_ata_a, authority, released, state.mint_a)
        reserves = await ledger.close_account(vault_address, authority, reserve_destination=state.maker)
    reserves += await ledger.close_record(escrow, reserve_destination=state.maker)

    validate_transition(EscrowStatus.OPEN, EscrowStatus.SETTLED)
    await ledger.log_event(
        AuditAction.SETTLE.value,
        escrow,
        taker,
        {"maker": state.maker, "paid": state.receive, "released": released},
    )
    logger.info("escrow settled %s taker=%s paid=%s released=%s", escrow, taker, state.receive, released)
    return ClosedEscrow(
        escrow=escrow,
        status=EscrowStatus.SETTLED,
        released=released,
        paid=state.receive,
        reserves_returned=reserves,
    )


async def cancel_escrow(
    ledger: Ledger,
    caller: str,
    escrow: str,
    mint_a: str | None = None,
    vault: str | None = None,
) -> ClosedEscrow:
    state = await ledger.load_record(escrow)
    if caller != state.maker:
        raise Unauthorized(f"Only the maker {state.maker} may cancel {escrow}")
    vault_address = await _verify_accounts(ledger, escrow, state, mint_a=mint_a, vault=vault)

    maker_ata_a = await ledger.get_or_create_account(state.maker, state.mint_a, payer=state.maker)

    with CustodialSigner.for_escrow(state.maker, state.seed, state.bump, ledger.program_id) as authority:
        released = await ledger.balance_of(vault_address)
        await ledger.transfer(vault_address, maker_ata_a, authority, released, state.mint_a)
        reserves = await ledger.close_account(vault_address, authority, reserve_destination=state.maker)
    reserves += await ledger.close_record(escrow, reserve_destination=state.maker)

    validate_transition(EscrowStatus.OPEN, EscrowStatus.REFUNDED)
    await ledger.log_event(AuditAction.CANCEL.value, escrow, caller, {"refunded": released})
    logger.info("escrow refunded %s maker=%s amount=%s", escrow, state.maker, released)
    return ClosedEscrow(
        escrow=escrow,
        status=EscrowStatus.REFUNDED,
        released=released,
        paid=0,
        reserves_returned=reserves,
    )


async def get_escrow(ledger: Ledger, address: str) -> EscrowView:
    state = await ledger.load_record(address, for_update=False)
    vault = ledger.associated_address(address, state.mint_a)
    return EscrowView(
        address=address,
        seed=state.seed,
        maker=state.maker,
        mint_a=state.mint_a,
        mint_b=state.mint_b,
        receive=state.receive,
        bump=state.bump,
        vault=vault,
        vault_balance=await ledger.balance_of(vault),
    )
