from __future__ import annotations

import hashlib
import struct
from dataclasses import dataclass

from vaultswap.errors import AccountMismatch
from vaultswap.keys import b58encode, decode_address

DISCRIMINATOR = hashlib.sha256(b"account:Escrow").digest()[:8]

# seed, maker, mint_a, mint_b, receive, bump
_LAYOUT = struct.Struct("<Q32s32s32sQB")


@dataclass(frozen=True)
class EscrowState:
    """Terms of one open trade.

    The deposited amount is not stored; the holding account balance is the
    only record of it.
    """

    seed: int
    maker: str
    mint_a: str
    mint_b: str
    receive: int
    bump: int

    SPACE = len(DISCRIMINATOR) + _LAYOUT.size

    def pack(self) -> bytes:
        return DISCRIMINATOR + _LAYOUT.pack(
            self.seed,
            decode_address(self.maker),
            decode_address(self.mint_a),
            decode_address(self.mint_b),
            self.receive,
            self.bump,
        )

    @classmethod
    def unpack(cls, data: bytes) -> "EscrowState":
        if len(data) != cls.SPACE or data[: len(DISCRIMINATOR)] != DISCRIMINATOR:
            raise AccountMismatch("Account data is not an escrow record")
        seed, maker, mint_a, mint_b, receive, bump = _LAYOUT.unpack(data[len(DISCRIMINATOR):])
        return cls(
            seed=seed,
            maker=b58encode(maker),
            mint_a=b58encode(mint_a),
            mint_b=b58encode(mint_b),
            receive=receive,
            bump=bump,
        )
