from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol, Sequence, Union

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from vaultswap.config import Settings
from vaultswap.derivation import CustodialSigner, WalletSigner, associated_account_address, find_program_address
from vaultswap.errors import (
    AccountMismatch,
    AlreadyInUse,
    InsufficientFunds,
    InvalidAmount,
    NotFound,
    Unauthorized,
)
from vaultswap.keys import Keypair, decode_address
from vaultswap.models import Asset, AuditLog, EscrowRecord, TokenAccount, Wallet
from vaultswap.state import EscrowState

logger = logging.getLogger(__name__)

ACCOUNT_STORAGE_OVERHEAD = 128
TOKEN_ACCOUNT_SPACE = 165

Signer = Union[WalletSigner, CustodialSigner]


@dataclass(frozen=True)
class TokenAccountView:
    address: str
    owner: str
    asset: str
    amount: int
    reserve: int


@dataclass(frozen=True)
class AssetView:
    address: str
    mint_authority: str
    decimals: int
    supply: int


class Ledger(Protocol):
    """What the escrow flows need from the token ledger."""

    program_id: str

    def derive_address(self, seeds: Sequence[bytes]) -> tuple[str, int]: ...
    def associated_address(self, owner: str, asset: str) -> str: ...
    async def get_asset(self, asset: str) -> AssetView: ...
    async def create_account(self, owner: str, asset: str, payer: str) -> str: ...
    async def get_or_create_account(self, owner: str, asset: str, payer: str) -> str: ...
    async def get_account(self, account: str) -> TokenAccountView: ...
    async def balance_of(self, account: str) -> int: ...
    async def transfer(self, source: str, destination: str, signer: Signer, amount: int, asset: str) -> None: ...
    async def close_account(self, account: str, signer: Signer, reserve_destination: str) -> int: ...
    async def create_record(self, address: str, state: EscrowState, payer: str) -> None: ...
    async def load_record(self, address: str, for_update: bool = True) -> EscrowState: ...
    async def close_record(self, address: str, reserve_destination: str) -> int: ...
    async def log_event(self, action: str, escrow_address: str | None, actor: str | None, metadata: dict) -> None: ...


class SqlLedger:
    """Ledger backed by the SQLAlchemy session it is given.

    Nothing here commits. Callers wrap a whole command in ``session.begin()``
    so a failure at any step discards every earlier write of that command.
    """

    def __init__(self, session: AsyncSession, settings: Settings) -> None:
        self.session = session
        self.settings = settings
        self.program_id = settings.escrow_program_id
        self.ledger_id = settings.token_ledger_id

    def rent_exempt_minimum(self, data_len: int) -> int:
        return (
            (ACCOUNT_STORAGE_OVERHEAD + data_len)
            * self.settings.lamports_per_byte_year
            * self.settings.rent_exemption_threshold
        )

    def derive_address(self, seeds: Sequence[bytes]) -> tuple[str, int]:
        return find_program_address(seeds, self.program_id)

    def associated_address(self, owner: str, asset: str) -> str:
        return associated_account_address(owner, asset, self.ledger_id)

    # --- native balances -------------------------------------------------

    async def airdrop(self, address: str, lamports: int) -> int:
        if lamports <= 0:
            raise InvalidAmount("Airdrop must be positive")
        decode_address(address)
        await self._credit(address, lamports)
        wallet = await self.session.get(Wallet, address)
        return wallet.lamports

    async def native_balance(self, address: str) -> int:
        wallet = await self.session.get(Wallet, address)
        return wallet.lamports if wallet else 0

    async def _debit(self, address: str, lamports: int) -> None:
        wallet = await self.session.get(Wallet, address, with_for_update=True)
        if wallet is None or wallet.lamports < lamports:
            raise InsufficientFunds(f"{address} cannot cover a reserve of {lamports}")
        wallet.lamports -= lamports
        await self.session.flush()

    async def _credit(self, address: str, lamports: int) -> None:
        wallet = await self.session.get(Wallet, address, with_for_update=True)
        if wallet is None:
            wallet = Wallet(address=address, lamports=0, created_at=datetime.utcnow())
            self.session.add(wallet)
        wallet.lamports += lamports
        await self.session.flush()

    # --- assets ----------------------------------------------------------

    async def create_asset(self, mint_authority: str, decimals: int, address: str | None = None) -> str:
        if not 0 <= decimals <= 18:
            raise InvalidAmount(f"Unsupported decimals {decimals}")
        decode_address(mint_authority)
        address = address or Keypair.generate().address
        if await self.session.get(Asset, address) is not None:
            raise AlreadyInUse(f"Asset {address} already exists")
        asset = Asset(
            address=address,
            mint_authority=mint_authority,
            decimals=decimals,
            supply=0,
            created_at=datetime.utcnow(),
        )
        await self._insert(asset, f"Asset {address}")
        return address

    async def get_asset(self, asset: str) -> AssetView:
        row = await self._asset(asset)
        return AssetView(
            address=row.address,
            mint_authority=row.mint_authority,
            decimals=row.decimals,
            supply=row.supply,
        )

    async def mint_to(self, account: str, signer: Signer, amount: int) -> None:
        if amount <= 0:
            raise InvalidAmount("Mint amount must be positive")
        token = await self._token_account(account)
        asset = await self._asset(token.asset, for_update=True)
        self._authorize(asset.mint_authority, signer)
        asset.supply += amount
        token.amount += amount
        await self.session.flush()

    async def _asset(self, address: str, for_update: bool = False) -> Asset:
        row = await self.session.get(Asset, address, with_for_update=for_update)
        if row is None:
            raise NotFound(f"Asset {address} does not exist")
        return row

    # --- token accounts --------------------------------------------------

    async def create_account(self, owner: str, asset: str, payer: str) -> str:
        await self._asset(asset)
        address = self.associated_address(owner, asset)
        if await self.session.get(TokenAccount, address) is not None:
            raise AlreadyInUse(f"Account {address} already exists")
        reserve = self.rent_exempt_minimum(TOKEN_ACCOUNT_SPACE)
        await self._debit(payer, reserve)
        account = TokenAccount(
            address=address,
            owner=owner,
            asset=asset,
            amount=0,
            reserve=reserve,
            created_at=datetime.utcnow(),
        )
        await self._insert(account, f"Account {address}")
        return address

    async def get_or_create_account(self, owner: str, asset: str, payer: str) -> str:
        address = self.associated_address(owner, asset)
        existing = await self.session.get(TokenAccount, address)
        if existing is None:
            return await self.create_account(owner, asset, payer)
        if existing.owner != owner or existing.asset != asset:
            raise AccountMismatch(f"Account {address} is not owned by {owner} for {asset}")
        return address

    async def get_account(self, account: str) -> TokenAccountView:
        row = await self._token_account(account, for_update=False)
        return TokenAccountView(
            address=row.address,
            owner=row.owner,
            asset=row.asset,
            amount=row.amount,
            reserve=row.reserve,
        )

    async def balance_of(self, account: str) -> int:
        row = await self._token_account(account)
        return row.amount

    async def transfer(self, source: str, destination: str, signer: Signer, amount: int, asset: str) -> None:
        if amount < 0:
            raise InvalidAmount("Transfer amount cannot be negative")
        src = await self.session.get(TokenAccount, source, with_for_update=True)
        if src is None:
            raise InsufficientFunds(f"Source account {source} does not exist")
        dst = await self._token_account(destination)
        if src.asset != asset or dst.asset != asset:
            raise AccountMismatch(f"Transfer of {asset} between {src.asset} and {dst.asset} accounts")
        self._authorize(src.owner, signer)
        if src.amount < amount:
            raise InsufficientFunds(f"{source} holds {src.amount}, needs {amount}")
        src.amount -= amount
        dst.amount += amount
        await self.session.flush()
        logger.debug("transfer %s %s -> %s (%s)", amount, source, destination, asset)

    async def close_account(self, account: str, signer: Signer, reserve_destination: str) -> int:
        row = await self._token_account(account)
        self._authorize(row.owner, signer)
        if row.amount != 0:
            raise AccountMismatch(f"Account {account} still holds {row.amount}")
        reserve = row.reserve
        await self.session.delete(row)
        await self._credit(reserve_destination, reserve)
        return reserve

    async def _insert(self, row, label: str) -> None:
        """Add and flush ``row``; losing a key race to another writer is AlreadyInUse."""
        self.session.add(row)
        try:
            await self.session.flush()
        except IntegrityError as exc:
            raise AlreadyInUse(f"{label} already exists") from exc

    async def _token_account(self, address: str, for_update: bool = True) -> TokenAccount:
        row = await self.session.get(TokenAccount, address, with_for_update=for_update)
        if row is None:
            raise NotFound(f"Account {address} does not exist")
        return row

    def _authorize(self, owner: str, signer: Signer) -> None:
        if isinstance(signer, CustodialSigner):
            actual = signer.resolve()
        else:
            actual = signer.address
        if actual != owner:
            raise Unauthorized(f"{actual} cannot sign for accounts owned by {owner}")

    # --- escrow records --------------------------------------------------

    async def create_record(self, address: str, state: EscrowState, payer: str) -> None:
        if await self.session.get(EscrowRecord, address) is not None:
            raise AlreadyInUse(f"Escrow {address} already exists")
        reserve = self.rent_exempt_minimum(EscrowState.SPACE)
        await self._debit(payer, reserve)
        record = EscrowRecord(
            address=address,
            seed=state.seed,
            maker=state.maker,
            mint_a=state.mint_a,
            mint_b=state.mint_b,
            receive=state.receive,
            bump=state.bump,
            data=state.pack(),
            reserve=reserve,
            created_at=datetime.utcnow(),
        )
        await self._insert(record, f"Escrow {address}")

    async def load_record(self, address: str, for_update: bool = True) -> EscrowState:
        row = await self.session.get(EscrowRecord, address, with_for_update=for_update)
        if row is None:
            raise NotFound(f"Escrow {address} does not exist")
        return row.to_state()

    async def close_record(self, address: str, reserve_destination: str) -> int:
        row = await self.session.get(EscrowRecord, address, with_for_update=True)
        if row is None:
            raise NotFound(f"Escrow {address} does not exist")
        reserve = row.reserve
        await self.session.delete(row)
        await self._credit(reserve_destination, reserve)
        return reserve

    async def log_event(self, action: str, escrow_address: str | None, actor: str | None, metadata: dict) -> None:
        self.session.add(
            AuditLog(
                escrow_address=escrow_address,
                actor=actor,
                action=action,
                metadata_json=metadata,
                created_at=datetime.utcnow(),
            )
        )
