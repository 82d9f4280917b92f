from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path

from vaultswap.amounts import format_amount, to_base_units
from vaultswap.config import load_settings
from vaultswap.db import atomic, create_engine, create_schema, create_session_factory
from vaultswap.derivation import WalletSigner
from vaultswap.keys import Keypair
from vaultswap.ledger import SqlLedger
from vaultswap.security import decrypt_secret

logging.basicConfig(level=logging.INFO)


def load_keypair(path: str, encryption_key: str) -> Keypair:
    return Keypair.from_secret(decrypt_secret(Path(path).read_bytes(), encryption_key))


async def run(args: argparse.Namespace) -> None:
    settings = load_settings()
    authority = load_keypair(args.authority_key, args.encryption_key)
    engine = create_engine(settings.database_url)
    try:
        if args.create_schema:
            await create_schema(engine)
        session_factory = create_session_factory(engine)

        async with atomic(session_factory) as session:
            ledger = SqlLedger(session, settings)
            await ledger.airdrop(authority.address, args.lamports)
            if args.recipient != authority.address:
                await ledger.airdrop(args.recipient, args.lamports)
            asset = args.asset or await ledger.create_asset(authority.address, args.decimals)
            decimals = (await ledger.get_asset(asset)).decimals
            account = await ledger.get_or_create_account(args.recipient, asset, payer=args.recipient)
            amount = to_base_units(args.amount, decimals)
            await ledger.mint_to(account, WalletSigner(authority.address), amount)
    finally:
        await engine.dispose()

    logging.info("minted %s of %s to %s", format_amount(amount, decimals), asset, account)


def main() -> None:
    parser = argparse.ArgumentParser(description="Create an asset and fund a wallet on the local ledger.")
    parser.add_argument("--authority-key", required=True, help="Encrypted key blob of the mint authority.")
    parser.add_argument("--encryption-key", required=True, help="Encryption key from env.")
    parser.add_argument("--recipient", required=True, help="Address that receives the minted tokens.")
    parser.add_argument("--amount", required=True, help="Amount in whole units, e.g. 12.5.")
    parser.add_argument("--asset", help="Existing asset address; a new one is created when omitted.")
    parser.add_argument("--decimals", type=int, default=6)
    parser.add_argument("--lamports", type=int, default=1_000_000_000)
    parser.add_argument("--create-schema", action="store_true")
    asyncio.run(run(parser.parse_args()))


if __name__ == "__main__":
    main()
