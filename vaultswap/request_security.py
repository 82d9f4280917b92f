from __future__ import annotations

import binascii
import time
from typing import Protocol

from vaultswap.errors import AccountMismatch, Unauthorized
from vaultswap.keys import verify_signature
from vaultswap.security import SignedCommand, decode_signature


def verify_timestamp(timestamp: int, max_age_seconds: int = 60) -> None:
    now = int(time.time())
    if abs(now - timestamp) > max_age_seconds:
        raise ValueError("Timestamp expired")


class RedisLike(Protocol):
    async def setnx(self, key: str, value: str) -> bool: ...
    async def expire(self, key: str, ttl: int) -> bool: ...


async def verify_nonce(redis: RedisLike, nonce: str, ttl_seconds: int = 120) -> None:
    key = f"nonce:{nonce}"
    exists = await redis.setnx(key, "1")
    if not exists:
        raise ValueError("Replay detected")
    await redis.expire(key, ttl_seconds)


def verify_command(command: SignedCommand) -> None:
    try:
        signature = decode_signature(command.signature)
        verify_signature(command.signer, command.message(), signature)
    except (binascii.Error, ValueError, AccountMismatch, Unauthorized) as exc:
        raise ValueError("Invalid signature") from exc
