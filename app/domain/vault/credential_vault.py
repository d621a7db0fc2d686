"""Symmetric encryption of secrets at rest (stream keys, third-party API keys).

Token format: ``base64(nonce):base64(tag):base64(ciphertext)``. The token carries
everything needed to decrypt it apart from the process-wide key.
"""

import base64
import binascii
import hashlib
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from loguru import logger

NONCE_LENGTH = 12
TAG_LENGTH = 16
MASK_PREFIX = "****"


class VaultError(Exception):
    """Base class for credential vault failures."""


class VaultConfigError(VaultError):
    """Key material is missing or unusable."""


class DecryptionError(VaultError):
    """Token is malformed, was tampered with, or was sealed with another key."""


def derive_key(secret: str) -> bytes:
    """Turn the configured secret into a 32-byte AES key.

    A 64-character hex string is used as the raw key; anything else is hashed.
    """
    if len(secret) == 64:
        try:
            return bytes.fromhex(secret)
        except ValueError:
            pass
    return hashlib.sha256(secret.encode("utf-8")).digest()


class CredentialVault:
    """AES-256-GCM vault bound to a single process-wide key."""

    def __init__(self, secret: str | None):
        if not secret:
            raise VaultConfigError("ENCRYPTION_KEY is not set")
        self._aead = AESGCM(derive_key(secret))

    def encrypt(self, plaintext: str) -> str:
        nonce = os.urandom(NONCE_LENGTH)
        sealed = self._aead.encrypt(nonce, plaintext.encode("utf-8"), None)
        ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
        return ":".join(_b64(part) for part in (nonce, tag, ciphertext))

    def decrypt(self, token: str) -> str:
        parts = token.split(":") if isinstance(token, str) else []
        if len(parts) != 3:
            raise DecryptionError("Invalid encrypted value format")

        try:
            nonce, tag, ciphertext = (base64.b64decode(p, validate=True) for p in parts)
        except (binascii.Error, ValueError) as e:
            raise DecryptionError("Invalid encrypted value encoding") from e

        if len(nonce) != NONCE_LENGTH or len(tag) != TAG_LENGTH:
            raise DecryptionError("Invalid encrypted value format")

        try:
            plaintext = self._aead.decrypt(nonce, ciphertext + tag, None)
        except InvalidTag as e:
            raise DecryptionError("Encrypted value failed integrity check") from e

        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecryptionError("Decrypted value is not valid UTF-8") from e

    def mask(self, token: str | None) -> str | None:
        """Display form of a stored secret: ``****`` plus its last four characters.

        Never raises. A token that cannot be decrypted is masked as-is.
        """
        if not token:
            return None
        try:
            value = self.decrypt(token)
        except DecryptionError:
            logger.debug("Masking undecryptable value without decrypting it")
            value = token
        return mask_plaintext(value)

    @staticmethod
    def is_encrypted(value: str | None) -> bool:
        if not value:
            return False
        parts = value.split(":")
        return len(parts) == 3 and all(parts)


def mask_plaintext(value: str) -> str:
    if len(value) <= 4:
        return MASK_PREFIX
    return MASK_PREFIX + value[-4:]


def is_masked(value: str) -> bool:
    return value.startswith(MASK_PREFIX)


def _b64(raw: bytes) -> str:
    return base64.b64encode(raw).decode("ascii")


def init_vault(secret: str | None) -> CredentialVault:
    """Build the vault at startup. Raises VaultConfigError when no key is configured."""
    return CredentialVault(secret)
