import asyncio

import pytest

from vaultswap.db import atomic
from vaultswap.derivation import CustodialSigner, WalletSigner, find_escrow_address
from vaultswap.errors import AccountMismatch, AlreadyInUse, InsufficientFunds, NotFound, Unauthorized
from vaultswap.escrow import open_escrow
from vaultswap.keys import Keypair
from vaultswap.ledger import TOKEN_ACCOUNT_SPACE
from vaultswap.models import EscrowRecord
from vaultswap.state import EscrowState

from conftest import STARTING_LAMPORTS, STARTING_TOKENS


def test_rent_formula(run_world):
    async def scenario(world):
        assert world.rent(TOKEN_ACCOUNT_SPACE) == (128 + 165) * 3480 * 2

    run_world(scenario)


def test_transfer_requires_owner_signature(run_world):
    async def scenario(world):
        maker_x = await world.call(lambda ledger: ledger.get_or_create_account(
            world.maker.address, world.mint_x, payer=world.maker.address))
        taker_x = await world.call(lambda ledger: ledger.create_account(
            world.taker.address, world.mint_x, payer=world.taker.address))
        with pytest.raises(Unauthorized):
            await world.call(
                lambda ledger: ledger.transfer(maker_x, taker_x, WalletSigner(world.taker.address), 10, world.mint_x)
            )
        await world.call(
            lambda ledger: ledger.transfer(maker_x, taker_x, WalletSigner(world.maker.address), 10, world.mint_x)
        )
        assert await world.balance(world.taker.address, world.mint_x) == 10
        assert await world.balance(world.maker.address, world.mint_x) == STARTING_TOKENS - 10

    run_world(scenario)


def test_transfer_checks_asset(run_world):
    async def scenario(world):
        maker_x = await world.call(lambda ledger: ledger.get_or_create_account(
            world.maker.address, world.mint_x, payer=world.maker.address))
        taker_y = await world.call(lambda ledger: ledger.get_or_create_account(
            world.taker.address, world.mint_y, payer=world.taker.address))
        with pytest.raises(AccountMismatch):
            await world.call(
                lambda ledger: ledger.transfer(maker_x, taker_y, WalletSigner(world.maker.address), 1, world.mint_x)
            )

    run_world(scenario)


def test_create_account_twice_and_without_lamports(run_world):
    async def scenario(world):
        with pytest.raises(AlreadyInUse):
            await world.call(lambda ledger: ledger.create_account(
                world.maker.address, world.mint_x, payer=world.maker.address))
        broke = Keypair.generate().address
        with pytest.raises(InsufficientFunds):
            await world.call(lambda ledger: ledger.create_account(broke, world.mint_x, payer=broke))
        with pytest.raises(NotFound):
            await world.call(lambda ledger: ledger.balance_of(world.maker.address))

    run_world(scenario)


def test_mint_requires_authority(run_world):
    async def scenario(world):
        maker_x = await world.call(lambda ledger: ledger.get_or_create_account(
            world.maker.address, world.mint_x, payer=world.maker.address))
        with pytest.raises(Unauthorized):
            await world.call(lambda ledger: ledger.mint_to(maker_x, WalletSigner(world.maker.address), 5))

    run_world(scenario)


def test_vault_only_moves_with_its_own_custodial_signer(run_world):
    async def scenario(world):
        opened = await world.call(
            lambda ledger: open_escrow(ledger, world.maker.address, 1, 100, 50, world.mint_x, world.mint_y)
        )
        maker_x = await world.call(lambda ledger: ledger.get_or_create_account(
            world.maker.address, world.mint_x, payer=world.maker.address))
        program = world.settings.escrow_program_id

        # the maker's own key cannot move the vault
        with pytest.raises(Unauthorized):
            await world.call(
                lambda ledger: ledger.transfer(opened.vault, maker_x, WalletSigner(world.maker.address), 50, world.mint_x)
            )

        # seeds of a different escrow do not re-derive to the vault owner
        _, other_bump = find_escrow_address(world.maker.address, 2, program)
        other = CustodialSigner.for_escrow(world.maker.address, 2, other_bump, program)
        with pytest.raises(Unauthorized):
            await world.call(lambda ledger: ledger.transfer(opened.vault, maker_x, other, 50, world.mint_x))

        # a signer that claims the vault owner's address is still resolved from its seeds
        other.address = opened.escrow
        with pytest.raises(Unauthorized):
            await world.call(lambda ledger: ledger.transfer(opened.vault, maker_x, other, 50, world.mint_x))

        assert await world.balance(opened.escrow, world.mint_x) == 50

    run_world(scenario)


def test_close_account_requires_empty_balance(run_world):
    async def scenario(world):
        opened = await world.call(
            lambda ledger: open_escrow(ledger, world.maker.address, 1, 100, 50, world.mint_x, world.mint_y)
        )
        signer = CustodialSigner.for_escrow(world.maker.address, 1, opened.bump, world.settings.escrow_program_id)
        with pytest.raises(AccountMismatch):
            await world.call(lambda ledger: ledger.close_account(opened.vault, signer, world.maker.address))
        assert await world.account_exists(opened.vault)

    run_world(scenario)


def test_airdrop_creates_wallet(run_world):
    async def scenario(world):
        fresh = Keypair.generate().address
        assert await world.lamports(fresh) == 0
        assert await world.call(lambda ledger: ledger.airdrop(fresh, 500)) == 500
        assert await world.lamports(world.maker.address) == STARTING_LAMPORTS

    run_world(scenario)


def test_concurrent_account_creation(run_world):
    async def scenario(world):
        owner = Keypair.generate().address

        def create(ledger):
            return ledger.get_or_create_account(owner, world.mint_y, payer=world.taker.address)

        results = await asyncio.gather(world.call(create), world.call(create), return_exceptions=True)
        assert all(isinstance(result, (str, AlreadyInUse)) for result in results)
        assert any(isinstance(result, str) for result in results)
        assert await world.balance(owner, world.mint_y) == 0

    run_world(scenario)


def test_record_is_stored_in_packed_layout(run_world):
    async def scenario(world):
        opened = await world.call(
            lambda ledger: open_escrow(ledger, world.maker.address, 1, 100, 50, world.mint_x, world.mint_y)
        )
        async with atomic(world.session_factory) as session:
            row = await session.get(EscrowRecord, opened.escrow)
            assert len(row.data) == EscrowState.SPACE
            assert EscrowState.unpack(row.data) == EscrowState(
                seed=1,
                maker=world.maker.address,
                mint_a=world.mint_x,
                mint_b=world.mint_y,
                receive=100,
                bump=opened.bump,
            )
            row.data = b"\x00" * EscrowState.SPACE

        with pytest.raises(AccountMismatch):
            await world.call(lambda ledger: ledger.load_record(opened.escrow))

    run_world(scenario)
