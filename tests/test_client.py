import asyncio
import json

import httpx
import pytest

from vaultswap.client import EscrowClient
from vaultswap.keys import Keypair
from vaultswap.request_security import verify_command
from vaultswap.security import SignedCommand


def test_client_signs_open_and_settle():
    maker = Keypair.generate()
    mint_a = Keypair.generate().address
    mint_b = Keypair.generate().address
    escrow = Keypair.generate().address
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        command = "open" if request.url.path == "/escrows" else request.url.path.rsplit("/", 1)[-1]
        signed = SignedCommand.from_payload(command, payload)
        verify_command(signed)
        seen.append((command, signed.signer, payload))
        return httpx.Response(201 if command == "open" else 200, json={"escrow": escrow})

    client = EscrowClient("http://vaultswap.test/", maker, transport=httpx.MockTransport(handler))

    async def run():
        await client.open(seed=9, receive=100, deposit=50, mint_a=mint_a, mint_b=mint_b)
        await client.settle(escrow, mint_b=mint_b)

    asyncio.run(run())

    assert [entry[0] for entry in seen] == ["open", "settle"]
    assert all(entry[1] == maker.address for entry in seen)
    assert "vault" not in seen[0][2]
    assert seen[1][2]["mint_b"] == mint_b
    assert seen[1][2]["escrow"] == escrow


def test_client_raises_on_error_status():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"error": "not_found"})

    client = EscrowClient("http://vaultswap.test", Keypair.generate(), transport=httpx.MockTransport(handler))

    async def run():
        with pytest.raises(httpx.HTTPStatusError) as excinfo:
            await client.get_escrow(Keypair.generate().address)
        assert excinfo.value.response.status_code == 404

    asyncio.run(run())
