"""
Symmetric encryption for integration credentials at rest.

AES-256-GCM with a key derived from ENCRYPTION_SECRET. Tokens are stored as
`<nonce hex>:<ciphertext+tag hex>`.
"""

from __future__ import annotations

import hashlib
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from . import settings

NONCE_BYTES = 12
DEFAULT_SECRET = "dev-change-this-encryption-secret"


class CryptoError(RuntimeError):
    pass


def _key() -> bytes:
    secret = settings.env_str("ENCRYPTION_SECRET", DEFAULT_SECRET)
    return hashlib.sha256(secret.encode("utf-8")).digest()


def encrypt(text: str | None) -> str | None:
    if text is None:
        return None
    nonce = os.urandom(NONCE_BYTES)
    ciphertext = AESGCM(_key()).encrypt(nonce, text.encode("utf-8"), None)
    return f"{nonce.hex()}:{ciphertext.hex()}"


def decrypt(token: str | None) -> str | None:
    if token is None:
        return None

    nonce_hex, sep, cipher_hex = token.partition(":")
    if not sep or not nonce_hex or not cipher_hex:
        raise CryptoError("Malformed encrypted value.")

    try:
        nonce = bytes.fromhex(nonce_hex)
        ciphertext = bytes.fromhex(cipher_hex)
    except ValueError as exc:
        raise CryptoError("Malformed encrypted value.") from exc
    if len(nonce) != NONCE_BYTES:
        raise CryptoError("Malformed encrypted value.")

    try:
        plaintext = AESGCM(_key()).decrypt(nonce, ciphertext, None)
    except InvalidTag as exc:
        raise CryptoError("Encrypted value failed authentication.") from exc
    return plaintext.decode("utf-8")
