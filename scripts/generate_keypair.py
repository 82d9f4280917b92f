from __future__ import annotations

import argparse
from pathlib import Path

from vaultswap.keys import Keypair
from vaultswap.security import encrypt_secret


def main() -> None:
    parser = argparse.ArgumentParser(description="Generate an Ed25519 keypair and store it encrypted.")
    parser.add_argument("--out", required=True, help="Output path for encrypted key blob.")
    parser.add_argument("--encryption-key", required=True, help="Encryption key from env.")
    args = parser.parse_args()

    keypair = Keypair.generate()
    Path(args.out).write_bytes(encrypt_secret(keypair.secret_bytes(), args.encryption_key))
    print(f"Encrypted key written to {args.out}")
    print(f"Address: {keypair.address}")


if __name__ == "__main__":
    main()
