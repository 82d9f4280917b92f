"""Deterministic address derivation and key-less signing.

A derived address is the SHA-256 of its seeds, a bump byte and the owning
program id, chosen so that it is *not* a valid Ed25519 point. Nobody holds a
private key for it; the only way to act for it is to present the seeds, which
the ledger re-hashes and compares against the account owner.
"""

from __future__ import annotations

import hashlib
import struct
from dataclasses import dataclass, field
from typing import Sequence

from vaultswap.errors import AccountMismatch, DerivationError
from vaultswap.keys import b58encode, decode_address, is_on_curve

MAX_SEEDS = 16
MAX_SEED_LEN = 32
PDA_MARKER = b"ProgramDerivedAddress"
ESCROW_SEED = b"escrow"


def _check_seeds(seeds: Sequence[bytes]) -> None:
    if len(seeds) > MAX_SEEDS:
        raise DerivationError(f"At most {MAX_SEEDS} seeds allowed, got {len(seeds)}")
    for seed in seeds:
        if len(seed) > MAX_SEED_LEN:
            raise DerivationError(f"Seed longer than {MAX_SEED_LEN} bytes")


def _digest(seeds: Sequence[bytes], program_id: bytes) -> bytes:
    hasher = hashlib.sha256()
    for seed in seeds:
        hasher.update(seed)
    hasher.update(program_id)
    hasher.update(PDA_MARKER)
    return hasher.digest()


def create_program_address(seeds: Sequence[bytes], program_id: str) -> str:
    _check_seeds(seeds)
    digest = _digest(seeds, decode_address(program_id))
    if is_on_curve(digest):
        raise DerivationError("Derived address lies on the curve")
    return b58encode(digest)


def find_program_address(seeds: Sequence[bytes], program_id: str) -> tuple[str, int]:
    # the bump counts against MAX_SEEDS
    _check_seeds([*seeds, b"\x00"])
    program = decode_address(program_id)
    for bump in range(255, -1, -1):
        digest = _digest([*seeds, bytes([bump])], program)
        if not is_on_curve(digest):
            return b58encode(digest), bump
    raise DerivationError("Unable to find a viable bump")


def escrow_seeds(maker: str, seed: int) -> list[bytes]:
    return [ESCROW_SEED, decode_address(maker), struct.pack("<Q", seed)]


def find_escrow_address(maker: str, seed: int, program_id: str) -> tuple[str, int]:
    return find_program_address(escrow_seeds(maker, seed), program_id)


def verify_escrow_address(address: str, maker: str, seed: int, bump: int, program_id: str) -> None:
    try:
        expected = create_program_address([*escrow_seeds(maker, seed), bytes([bump])], program_id)
    except DerivationError as exc:
        raise AccountMismatch(f"Escrow {address} does not re-derive") from exc
    if expected != address:
        raise AccountMismatch(f"Escrow address {address} does not match derived {expected}")


def associated_account_address(owner: str, asset: str, ledger_id: str) -> str:
    address, _ = find_program_address([decode_address(owner), decode_address(asset)], ledger_id)
    return address


@dataclass(frozen=True)
class WalletSigner:
    """An authenticated caller; the ledger trusts its address as given."""

    address: str


@dataclass
class CustodialSigner:
    """Signing context for a derived authority.

    Built from the escrow record's own fields right before use and revoked when
    the ``with`` block exits. The ledger ignores ``address`` and re-derives it
    from ``seeds`` and ``program_id``.
    """

    seeds: tuple[bytes, ...]
    program_id: str
    address: str
    revoked: bool = field(default=False, init=False)

    @classmethod
    def for_escrow(cls, maker: str, seed: int, bump: int, program_id: str) -> "CustodialSigner":
        seeds = (*escrow_seeds(maker, seed), bytes([bump]))
        return cls(seeds=seeds, program_id=program_id, address=create_program_address(seeds, program_id))

    def resolve(self) -> str:
        if self.revoked:
            raise DerivationError("Custodial signer used outside its scope")
        return create_program_address(self.seeds, self.program_id)

    def __enter__(self) -> "CustodialSigner":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.revoked = True
