"""
Encryption of integration secrets at rest.

A Fernet key is derived per value from ENCRYPTION_KEY with PBKDF2-HMAC-SHA512
and a random salt. Stored values look like ``enc:v1:<salt>:<fernet token>``.
"""

import base64
import logging
import os
from typing import Any

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from ..config import get_settings

logger = logging.getLogger(__name__)

ENCRYPTED_PREFIX = "enc:v1:"
SALT_LENGTH = 32
KDF_ITERATIONS = 100_000

# Config keys that hold credentials
SECRET_CONFIG_KEYS = ("api_key", "access_token", "refresh_token", "client_secret")
MASKED_VALUE = "********"


class EncryptionError(Exception):
    """Raised when a secret cannot be encrypted or decrypted."""

    pass


def _master_key(master_key: str | None) -> str:
    key = master_key if master_key is not None else get_settings().encryption_key
    if not key:
        raise EncryptionError("ENCRYPTION_KEY environment variable is not set")
    return key


def _derive_fernet(master_key: str, salt: bytes) -> Fernet:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA512(),
        length=32,
        salt=salt,
        iterations=KDF_ITERATIONS,
    )
    return Fernet(base64.urlsafe_b64encode(kdf.derive(master_key.encode("utf-8"))))


def is_encrypted(value: Any) -> bool:
    return isinstance(value, str) and value.startswith(ENCRYPTED_PREFIX)


def encrypt_secret(plaintext: str, master_key: str | None = None) -> str:
    """Encrypt a secret. Already encrypted values are returned unchanged."""
    if is_encrypted(plaintext):
        return plaintext
    salt = os.urandom(SALT_LENGTH)
    token = _derive_fernet(_master_key(master_key), salt).encrypt(plaintext.encode("utf-8"))
    encoded_salt = base64.urlsafe_b64encode(salt).decode("ascii")
    return f"{ENCRYPTED_PREFIX}{encoded_salt}:{token.decode('ascii')}"


def decrypt_secret(value: str, master_key: str | None = None) -> str:
    """
    Decrypt a stored secret.

    Plain values (written before encryption was enabled) are returned as-is.
    """
    if not is_encrypted(value):
        return value
    try:
        encoded_salt, token = value[len(ENCRYPTED_PREFIX):].split(":", 1)
        salt = base64.urlsafe_b64decode(encoded_salt)
        fernet = _derive_fernet(_master_key(master_key), salt)
        return fernet.decrypt(token.encode("ascii")).decode("utf-8")
    except (ValueError, InvalidToken) as e:
        raise EncryptionError(
            "Failed to decrypt sensitive data: Invalid encryption data or key"
        ) from e


def encrypt_config(config: dict[str, Any], master_key: str | None = None) -> dict[str, Any]:
    """Return a copy of config with every secret value encrypted."""
    encrypted = dict(config)
    for key in SECRET_CONFIG_KEYS:
        value = encrypted.get(key)
        if isinstance(value, str) and value:
            encrypted[key] = encrypt_secret(value, master_key)
    return encrypted


def decrypt_config(config: dict[str, Any], master_key: str | None = None) -> dict[str, Any]:
    """Return a copy of config with every secret value decrypted."""
    decrypted = dict(config)
    for key in SECRET_CONFIG_KEYS:
        value = decrypted.get(key)
        if isinstance(value, str) and value:
            decrypted[key] = decrypt_secret(value, master_key)
    return decrypted


def mask_config(config: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of config that is safe to send to clients."""
    masked = dict(config)
    for key in SECRET_CONFIG_KEYS:
        if masked.get(key):
            masked[key] = MASKED_VALUE
    return masked
