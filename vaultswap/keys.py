from __future__ import annotations

from dataclasses import dataclass

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey

from vaultswap.errors import AccountMismatch, Unauthorized

ADDRESS_LENGTH = 32

B58_ALPHABET = b"123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
B58_MAP = {c: i for i, c in enumerate(B58_ALPHABET)}

# Ed25519 field prime and curve constant d = -121665/121666.
_P = 2**255 - 19
_D = (-121665 * pow(121666, _P - 2, _P)) % _P
_SQRT_M1 = pow(2, (_P - 1) // 4, _P)


def b58encode(data: bytes) -> str:
    n_pad = 0
    for c in data:
        if c == 0:
            n_pad += 1
        else:
            break
    num = int.from_bytes(data, "big")
    out = bytearray()
    while num > 0:
        num, rem = divmod(num, 58)
        out.append(B58_ALPHABET[rem])
    out.extend(B58_ALPHABET[0] for _ in range(n_pad))
    out.reverse()
    return out.decode("ascii")


def b58decode(text: str) -> bytes:
    raw = text.encode("ascii")
    num = 0
    for c in raw:
        if c not in B58_MAP:
            raise ValueError("Invalid base58 character")
        num = num * 58 + B58_MAP[c]
    n_pad = 0
    for c in raw:
        if c == B58_ALPHABET[0]:
            n_pad += 1
        else:
            break
    full = num.to_bytes((num.bit_length() + 7) // 8, "big") if num else b""
    return b"\x00" * n_pad + full


def decode_address(address: str) -> bytes:
    try:
        raw = b58decode(address)
    except (ValueError, UnicodeEncodeError) as exc:
        raise AccountMismatch(f"Malformed address {address!r}") from exc
    if len(raw) != ADDRESS_LENGTH:
        raise AccountMismatch(f"Address {address!r} is not {ADDRESS_LENGTH} bytes")
    return raw


def is_on_curve(data: bytes) -> bool:
    """Whether ``data`` is the compressed encoding of an Ed25519 point.

    Addresses that decode to a point could have a private key; derived
    addresses are required to fail this check.
    """
    if len(data) != ADDRESS_LENGTH:
        return False
    y = int.from_bytes(data, "little") & ((1 << 255) - 1)
    if y >= _P:
        return False
    sign = data[31] >> 7
    y2 = y * y % _P
    u = (y2 - 1) % _P
    v = (_D * y2 + 1) % _P
    x2 = u * pow(v, _P - 2, _P) % _P
    if x2 == 0:
        return sign == 0
    x = pow(x2, (_P + 3) // 8, _P)
    if (x * x - x2) % _P != 0:
        x = x * _SQRT_M1 % _P
    return (x * x - x2) % _P == 0


@dataclass(frozen=True)
class Keypair:
    private_key: Ed25519PrivateKey

    @classmethod
    def generate(cls) -> "Keypair":
        return cls(Ed25519PrivateKey.generate())

    @classmethod
    def from_secret(cls, secret: bytes) -> "Keypair":
        return cls(Ed25519PrivateKey.from_private_bytes(secret))

    def secret_bytes(self) -> bytes:
        return self.private_key.private_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PrivateFormat.Raw,
            encryption_algorithm=serialization.NoEncryption(),
        )

    @property
    def address(self) -> str:
        public = self.private_key.public_key().public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )
        return b58encode(public)

    def sign(self, message: bytes) -> bytes:
        return self.private_key.sign(message)


def verify_signature(address: str, message: bytes, signature: bytes) -> None:
    public = Ed25519PublicKey.from_public_bytes(decode_address(address))
    try:
        public.verify(signature, message)
    except InvalidSignature as exc:
        raise Unauthorized(f"Signature does not verify for {address}") from exc
