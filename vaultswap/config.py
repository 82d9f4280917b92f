from __future__ import annotations

import hashlib

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from vaultswap.keys import b58encode

DEFAULT_ESCROW_PROGRAM_ID = b58encode(hashlib.sha256(b"vaultswap:escrow").digest())
DEFAULT_TOKEN_LEDGER_ID = b58encode(hashlib.sha256(b"vaultswap:token-ledger").digest())


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    database_url: str = Field(..., alias="DATABASE_URL")
    escrow_program_id: str = Field(DEFAULT_ESCROW_PROGRAM_ID, alias="ESCROW_PROGRAM_ID")
    token_ledger_id: str = Field(DEFAULT_TOKEN_LEDGER_ID, alias="TOKEN_LEDGER_ID")

    lamports_per_byte_year: int = Field(3480, alias="LAMPORTS_PER_BYTE_YEAR")
    rent_exemption_threshold: int = Field(2, alias="RENT_EXEMPTION_THRESHOLD")


def load_settings() -> Settings:
    return Settings()
