"""
Re-encrypt Stored Credentials
=============================

CLI script for MEETGATE_ENCRYPTION_KEY rotation.
Decrypts every credential record with the old secret and re-encrypts it with
the new one, in a single transaction: one failure leaves every record as it was.

Usage:
    python -m app.scripts.reencrypt_credentials --old-secret OLD --new-secret NEW
"""

import argparse
import sys
from typing import List, Optional

from app.core.crypto import CryptoService
from app.core.database import get_engine, init_db
from app.core.errors import ConfigurationError, GatewayError
from app.services.credential_vault import CredentialVault


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Re-encrypt credential records after an encryption key change")
    parser.add_argument("--old-secret", required=True, help="Previous MEETGATE_ENCRYPTION_KEY")
    parser.add_argument("--new-secret", required=True, help="New MEETGATE_ENCRYPTION_KEY")
    args = parser.parse_args(argv)

    try:
        old_crypto = CryptoService(args.old_secret)
        new_crypto = CryptoService(args.new_secret)
    except ConfigurationError as e:
        print(f"Invalid secret: {e}", file=sys.stderr)
        return 2

    engine = get_engine()
    init_db(engine)
    vault = CredentialVault(new_crypto, engine=engine)

    try:
        count = vault.reencrypt_all(old_crypto, new_crypto)
    except GatewayError as e:
        print(
            f"Aborted. {e.detail}. No changes written (transaction rolled back).",
            file=sys.stderr,
        )
        return 1

    if count == 0:
        print("No credential records found. Nothing to re-encrypt.")
    else:
        print(f"Done. {count} credential record(s) re-encrypted successfully.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
