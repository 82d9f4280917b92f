from __future__ import annotations

from typing import Any

import httpx

from vaultswap.keys import Keypair
from vaultswap.security import sign_command


class EscrowClient:
    """Signs escrow commands with the caller's key and posts them to the API."""

    def __init__(
        self,
        base_url: str,
        keypair: Keypair,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.keypair = keypair
        self.timeout = timeout
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self.transport)

    async def _post(self, path: str, command: str, fields: dict[str, Any], extra: dict[str, Any]) -> dict[str, Any]:
        signed = sign_command(self.keypair, command, fields)
        payload = {**signed.to_payload(), **{k: v for k, v in extra.items() if v is not None}}
        async with self._client() as client:
            response = await client.post(path, json=payload)
            response.raise_for_status()
            return response.json()

    async def open(self, seed: int, receive: int, deposit: int, mint_a: str, mint_b: str, vault: str | None = None) -> dict[str, Any]:
        fields = {"seed": seed, "receive": receive, "deposit": deposit, "mint_a": mint_a, "mint_b": mint_b}
        return await self._post("/escrows", "open", fields, {"vault": vault})

    async def settle(self, escrow: str, mint_a: str | None = None, mint_b: str | None = None, vault: str | None = None) -> dict[str, Any]:
        extra = {"mint_a": mint_a, "mint_b": mint_b, "vault": vault}
        return await self._post(f"/escrows/{escrow}/settle", "settle", {"escrow": escrow}, extra)

    async def cancel(self, escrow: str, mint_a: str | None = None, vault: str | None = None) -> dict[str, Any]:
        extra = {"mint_a": mint_a, "vault": vault}
        return await self._post(f"/escrows/{escrow}/cancel", "cancel", {"escrow": escrow}, extra)

    async def get_escrow(self, escrow: str) -> dict[str, Any]:
        async with self._client() as client:
            response = await client.get(f"/escrows/{escrow}")
            response.raise_for_status()
            return response.json()
