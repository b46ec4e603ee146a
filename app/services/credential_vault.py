"""
Credential Vault - per-user OAuth client descriptors, encrypted at rest.

Descriptors are JSON-serialized and sealed with the Crypto Service. The
ciphertext is bound to its owner through AAD, so a record copied onto another
user's row fails to decrypt instead of silently leaking credentials.
"""

import json
import logging
from typing import Any, Dict, Optional

from sqlalchemy.engine import Engine
from sqlmodel import select

from app.core.crypto import CryptoService
from app.core.database import get_engine, get_session_context
from app.core.errors import CredentialCorruptedError, DecryptionError, ValidationError
from app.core.timeutils import utcnow
from app.models.credential import CredentialRecord, CredentialStatus

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("client_id", "client_secret")


def _aad(user_id: str) -> bytes:
    return f"credentials:{user_id}".encode()


def validate_descriptor(descriptor: Any) -> Dict[str, Any]:
    """Ensure client_id and client_secret are present and non-blank."""
    if not isinstance(descriptor, dict):
        raise ValidationError("credentials must be an object")
    missing = [
        name for name in REQUIRED_FIELDS
        if not isinstance(descriptor.get(name), str) or not descriptor[name].strip()
    ]
    if missing:
        raise ValidationError(f"credentials missing required fields: {', '.join(missing)}")
    return descriptor


class CredentialVault:
    """Store and retrieve one encrypted descriptor per user."""

    def __init__(self, crypto: CryptoService, engine: Optional[Engine] = None):
        self._crypto = crypto
        self._engine = engine

    @property
    def engine(self) -> Engine:
        return self._engine or get_engine()

    def store(self, user_id: str, descriptor: Dict[str, Any]) -> CredentialStatus:
        """Encrypt and upsert the descriptor. Invalid input leaves any prior record untouched."""
        validate_descriptor(descriptor)
        token = self._crypto.encrypt(
            json.dumps(descriptor, separators=(",", ":")).encode("utf-8"),
            aad=_aad(user_id),
        )
        now = utcnow()
        with get_session_context(self.engine) as session:
            record = session.get(CredentialRecord, user_id)
            if record is None:
                record = CredentialRecord(
                    user_id=user_id,
                    encrypted_descriptor=token,
                    created_at=now,
                    updated_at=now,
                )
            else:
                record.encrypted_descriptor = token
                record.updated_at = now
            session.add(record)
            session.commit()

        logger.info("Credentials stored for user=%s", user_id)
        return CredentialStatus(configured=True, updated_at=now)

    def fetch(self, user_id: str) -> Optional[Dict[str, Any]]:
        """Return the decrypted descriptor, None when the user has none.

        Raises:
            CredentialCorruptedError: the record cannot be decrypted or parsed.
        """
        with get_session_context(self.engine) as session:
            record = session.get(CredentialRecord, user_id)
            if record is None:
                return None
            token = record.encrypted_descriptor

        try:
            plaintext = self._crypto.decrypt(token, aad=_aad(user_id))
            descriptor = json.loads(plaintext.decode("utf-8"))
        except DecryptionError as exc:
            raise CredentialCorruptedError(
                f"credential record for {user_id} failed to decrypt: {exc.detail}",
                context={"user_id": user_id},
            ) from exc
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise CredentialCorruptedError(
                f"credential record for {user_id} is not valid JSON",
                context={"user_id": user_id},
            ) from exc

        if not isinstance(descriptor, dict):
            raise CredentialCorruptedError(
                f"credential record for {user_id} is not an object",
                context={"user_id": user_id},
            )
        return descriptor

    def status(self, user_id: str) -> CredentialStatus:
        with get_session_context(self.engine) as session:
            record = session.get(CredentialRecord, user_id)
            if record is None:
                return CredentialStatus(configured=False)
            return CredentialStatus(configured=True, updated_at=record.updated_at)

    def delete(self, user_id: str) -> bool:
        with get_session_context(self.engine) as session:
            record = session.get(CredentialRecord, user_id)
            if record is None:
                return False
            session.delete(record)
            session.commit()
        logger.info("Credentials deleted for user=%s", user_id)
        return True

    def reencrypt_all(self, old_crypto: CryptoService, new_crypto: CryptoService) -> int:
        """Re-seal every record under new_crypto. All-or-nothing.

        Returns the number of records re-encrypted.

        Raises:
            CredentialCorruptedError: a record failed to decrypt; nothing was committed.
        """
        count = 0
        with get_session_context(self.engine) as session:
            records = session.exec(select(CredentialRecord)).all()
            try:
                for record in records:
                    aad = _aad(record.user_id)
                    try:
                        plaintext = old_crypto.decrypt(record.encrypted_descriptor, aad=aad)
                    except DecryptionError as exc:
                        raise CredentialCorruptedError(
                            f"credential record for {record.user_id} failed to decrypt",
                            context={"user_id": record.user_id},
                        ) from exc
                    record.encrypted_descriptor = new_crypto.encrypt(plaintext, aad=aad)
                    session.add(record)
                    count += 1
                session.commit()
            except Exception:
                session.rollback()
                raise

        logger.info("Re-encrypted %d credential records", count)
        return count
