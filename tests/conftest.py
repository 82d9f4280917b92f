from __future__ import annotations

import asyncio

import pytest
from sqlalchemy import select

from vaultswap.config import Settings
from vaultswap.db import atomic, create_engine, create_schema, create_session_factory
from vaultswap.derivation import WalletSigner
from vaultswap.keys import Keypair
from vaultswap.ledger import SqlLedger
from vaultswap.models import AuditLog, EscrowRecord, TokenAccount

STARTING_LAMPORTS = 1_000_000_000
STARTING_TOKENS = 1_000


class FakeRedis:
    def __init__(self):
        self.store = {}

    async def setnx(self, key, value):
        if key in self.store:
            return False
        self.store[key] = value
        return True

    async def expire(self, key, ttl):
        return True


class World:
    """A maker holding asset X and a taker holding asset Y on a fresh ledger."""

    def __init__(self, session_factory, settings: Settings):
        self.session_factory = session_factory
        self.settings = settings
        self.authority = Keypair.generate()
        self.maker = Keypair.generate()
        self.taker = Keypair.generate()
        self.mint_x = ""
        self.mint_y = ""

    async def setup(self) -> None:
        async with atomic(self.session_factory) as session:
            ledger = SqlLedger(session, self.settings)
            for keypair in (self.authority, self.maker, self.taker):
                await ledger.airdrop(keypair.address, STARTING_LAMPORTS)
            self.mint_x = await ledger.create_asset(self.authority.address, 6)
            self.mint_y = await ledger.create_asset(self.authority.address, 6)
            maker_x = await ledger.create_account(self.maker.address, self.mint_x, payer=self.authority.address)
            taker_y = await ledger.create_account(self.taker.address, self.mint_y, payer=self.authority.address)
            signer = WalletSigner(self.authority.address)
            await ledger.mint_to(maker_x, signer, STARTING_TOKENS)
            await ledger.mint_to(taker_y, signer, STARTING_TOKENS)

    async def call(self, operation):
        async with atomic(self.session_factory) as session:
            return await operation(SqlLedger(session, self.settings))

    async def balance(self, owner: str, asset: str) -> int | None:
        async with self.session_factory() as session:
            ledger = SqlLedger(session, self.settings)
            row = await session.get(TokenAccount, ledger.associated_address(owner, asset))
            return None if row is None else row.amount

    async def lamports(self, owner: str) -> int:
        async with self.session_factory() as session:
            return await SqlLedger(session, self.settings).native_balance(owner)

    async def record_exists(self, address: str) -> bool:
        async with self.session_factory() as session:
            return await session.get(EscrowRecord, address) is not None

    async def account_exists(self, address: str) -> bool:
        async with self.session_factory() as session:
            return await session.get(TokenAccount, address) is not None

    async def audit_actions(self) -> list[str]:
        async with self.session_factory() as session:
            result = await session.execute(select(AuditLog.action).order_by(AuditLog.id))
            return list(result.scalars().all())

    def rent(self, data_len: int) -> int:
        return SqlLedger(None, self.settings).rent_exempt_minimum(data_len)


@pytest.fixture
def settings(tmp_path):
    return Settings(DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")


@pytest.fixture
def run_world(settings):
    """Run ``scenario(world)`` on a freshly seeded ledger inside one event loop."""

    def runner(scenario):
        async def main():
            engine = create_engine(settings.database_url)
            await create_schema(engine)
            world = World(create_session_factory(engine), settings)
            await world.setup()
            try:
                return await scenario(world)
            finally:
                await engine.dispose()

        return asyncio.run(main())

    return runner


@pytest.fixture
def fake_redis():
    return FakeRedis()
