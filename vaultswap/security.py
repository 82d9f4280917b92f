from __future__ import annotations

import base64
import hashlib
import os
import time
from dataclasses import dataclass
from typing import Any

from vaultswap.keys import Keypair

COMMAND_FIELDS: dict[str, tuple[str, ...]] = {
    "open": ("seed", "receive", "deposit", "mint_a", "mint_b"),
    "settle": ("escrow",),
    "cancel": ("escrow",),
}


def derive_fernet_key(raw_key: str) -> bytes:
    digest = hashlib.sha256(raw_key.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest)


def encrypt_secret(plaintext: bytes, raw_key: str) -> bytes:
    from cryptography.fernet import Fernet

    fernet = Fernet(derive_fernet_key(raw_key))
    return fernet.encrypt(plaintext)


def decrypt_secret(ciphertext: bytes, raw_key: str) -> bytes:
    from cryptography.fernet import Fernet

    fernet = Fernet(derive_fernet_key(raw_key))
    return fernet.decrypt(ciphertext)


def generate_nonce() -> str:
    return base64.urlsafe_b64encode(os.urandom(18)).decode("utf-8")


def encode_signature(signature: bytes) -> str:
    return base64.urlsafe_b64encode(signature).decode("ascii")


def decode_signature(text: str) -> bytes:
    return base64.urlsafe_b64decode(text.encode("ascii"))


@dataclass(frozen=True)
class SignedCommand:
    command: str
    signer: str
    fields: dict[str, Any]
    timestamp: int
    nonce: str
    signature: str

    @classmethod
    def from_payload(cls, command: str, payload: dict[str, Any]) -> "SignedCommand":
        try:
            return cls(
                command=command,
                signer=str(payload["signer"]),
                fields={name: payload[name] for name in COMMAND_FIELDS[command]},
                timestamp=int(payload["timestamp"]),
                nonce=str(payload["nonce"]),
                signature=str(payload["signature"]),
            )
        except (KeyError, TypeError) as exc:
            raise ValueError(f"Missing field {exc}") from exc
        except OverflowError as exc:
            raise ValueError("Invalid timestamp") from exc

    def message(self) -> bytes:
        values = [str(self.fields[name]) for name in COMMAND_FIELDS[self.command]]
        return "|".join([self.command, self.signer, *values, str(self.timestamp), self.nonce]).encode("utf-8")

    def to_payload(self) -> dict[str, Any]:
        return {
            **self.fields,
            "signer": self.signer,
            "timestamp": self.timestamp,
            "nonce": self.nonce,
            "signature": self.signature,
        }


def sign_command(keypair: Keypair, command: str, fields: dict[str, Any], timestamp: int | None = None) -> SignedCommand:
    unsigned = SignedCommand(
        command=command,
        signer=keypair.address,
        fields=fields,
        timestamp=int(time.time()) if timestamp is None else timestamp,
        nonce=generate_nonce(),
        signature="",
    )
    signature = encode_signature(keypair.sign(unsigned.message()))
    return SignedCommand(
        command=unsigned.command,
        signer=unsigned.signer,
        fields=unsigned.fields,
        timestamp=unsigned.timestamp,
        nonce=unsigned.nonce,
        signature=signature,
    )
