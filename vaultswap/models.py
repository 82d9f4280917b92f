from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, BigInteger, CheckConstraint, DateTime, ForeignKey, Integer, LargeBinary, SmallInteger, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from vaultswap.state import EscrowState

ADDRESS = String(44)


class Base(DeclarativeBase):
    pass


class Wallet(Base):
    """Native balance of an identity; pays and receives account reserves."""

    __tablename__ = "wallets"

    address: Mapped[str] = mapped_column(ADDRESS, primary_key=True)
    lamports: Mapped[int] = mapped_column(BigInteger, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class Asset(Base):
    __tablename__ = "assets"

    address: Mapped[str] = mapped_column(ADDRESS, primary_key=True)
    mint_authority: Mapped[str] = mapped_column(ADDRESS)
    decimals: Mapped[int] = mapped_column(SmallInteger)
    supply: Mapped[int] = mapped_column(BigInteger, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class TokenAccount(Base):
    __tablename__ = "token_accounts"

    address: Mapped[str] = mapped_column(ADDRESS, primary_key=True)
    owner: Mapped[str] = mapped_column(ADDRESS, index=True)
    asset: Mapped[str] = mapped_column(ADDRESS, ForeignKey("assets.address"))
    amount: Mapped[int] = mapped_column(BigInteger, default=0)
    reserve: Mapped[int] = mapped_column(BigInteger)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_token_accounts_amount_non_negative"),
    )


class EscrowRecord(Base):
    __tablename__ = "escrow_records"

    address: Mapped[str] = mapped_column(ADDRESS, primary_key=True)
    seed: Mapped[int] = mapped_column(BigInteger)
    maker: Mapped[str] = mapped_column(ADDRESS, index=True)
    mint_a: Mapped[str] = mapped_column(ADDRESS)
    mint_b: Mapped[str] = mapped_column(ADDRESS)
    receive: Mapped[int] = mapped_column(BigInteger)
    bump: Mapped[int] = mapped_column(SmallInteger)
    data: Mapped[bytes] = mapped_column(LargeBinary)
    reserve: Mapped[int] = mapped_column(BigInteger)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        CheckConstraint("receive > 0", name="ck_escrow_records_receive_positive"),
    )

    def to_state(self) -> EscrowState:
        # data is authoritative; the other columns exist for lookups
        return EscrowState.unpack(self.data)


class AuditLog(Base):
    __tablename__ = "audit_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    escrow_address: Mapped[str | None] = mapped_column(ADDRESS, nullable=True, index=True)
    actor: Mapped[str | None] = mapped_column(ADDRESS, nullable=True)
    action: Mapped[str] = mapped_column(String(255))
    metadata_json: Mapped[dict] = mapped_column(JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
