"""
Credential Encryption
=====================

AES-256-GCM encryption for credential blobs with HKDF key derivation from the
process-wide secret. Supports AAD binding and dual-decrypt fallback for
secret rotation.

Token format: ``v1.<base64url(nonce || ciphertext || tag)>``
"""

from __future__ import annotations

import base64
import binascii
import logging
import os
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from app.core.errors import ConfigurationError, DecryptionError

logger = logging.getLogger(__name__)

TOKEN_VERSION = "v1"
NONCE_SIZE = 12  # 96-bit nonce
TAG_SIZE = 16


def _derive_key(secret: str, info: bytes, key_version: int = 1) -> bytes:
    """Derive a 256-bit key from the secret using HKDF."""
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=32,
        salt=f"meetgate-credentials-v{key_version}".encode(),
        info=info,
    )
    return hkdf.derive(secret.encode())


class CryptoService:
    """Symmetric encrypt/decrypt of opaque payloads.

    Args:
        secret: Process-wide secret. Must be non-empty.
        previous_secret: Optional secret from before a rotation; tried on
            decrypt when the current secret fails.
    """

    def __init__(self, secret: str, previous_secret: Optional[str] = None):
        if not secret or not secret.strip():
            raise ConfigurationError("CryptoService requires a non-empty secret")
        self._secret = secret
        self._aead = AESGCM(_derive_key(secret, b"credential-encryption"))
        self._previous_aead = (
            AESGCM(_derive_key(previous_secret, b"credential-encryption"))
            if previous_secret
            else None
        )

    def encrypt(self, plaintext: bytes, aad: Optional[bytes] = None) -> str:
        """Encrypt plaintext. When aad is given, the same aad is required to decrypt."""
        nonce = os.urandom(NONCE_SIZE)
        sealed = self._aead.encrypt(nonce, plaintext, aad)
        payload = base64.urlsafe_b64encode(nonce + sealed).decode("ascii")
        return f"{TOKEN_VERSION}.{payload}"

    def decrypt(self, token: str, aad: Optional[bytes] = None) -> bytes:
        """Decrypt a token produced by encrypt(). Raises DecryptionError."""
        nonce, sealed = self._split(token)
        try:
            return self._aead.decrypt(nonce, sealed, aad)
        except InvalidTag:
            if self._previous_aead is None:
                raise DecryptionError("Authentication tag mismatch")
        try:
            plaintext = self._previous_aead.decrypt(nonce, sealed, aad)
        except InvalidTag:
            raise DecryptionError("Authentication tag mismatch (current and previous secret)")
        logger.info("Decrypted with previous secret; re-encrypt pending rotation")
        return plaintext

    def derive_secret(self, purpose: str) -> str:
        """Derive a hex sub-secret for a named purpose (e.g. HMAC pepper)."""
        return _derive_key(self._secret, f"meetgate:{purpose}".encode()).hex()

    @staticmethod
    def _split(token: str) -> tuple[bytes, bytes]:
        if not isinstance(token, str):
            raise DecryptionError("Ciphertext must be a string")
        version, sep, payload = token.partition(".")
        if not sep or version != TOKEN_VERSION:
            raise DecryptionError("Unknown ciphertext format")
        try:
            raw = base64.urlsafe_b64decode(payload.encode("ascii"))
        except (binascii.Error, UnicodeEncodeError, ValueError):
            raise DecryptionError("Ciphertext is not valid base64")
        if len(raw) < NONCE_SIZE + TAG_SIZE:
            raise DecryptionError("Ciphertext is truncated")
        return raw[:NONCE_SIZE], raw[NONCE_SIZE:]
