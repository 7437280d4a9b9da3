"""Sealing of custodial key material at rest.

Uses Fernet (AES-128-CBC with HMAC) for symmetric encryption.
"""

import logging
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from splcustody.errors import ConfigurationError, SigningError

logger = logging.getLogger(__name__)

# Fernet tokens start with the base64 form of the version byte and timestamp
FERNET_PREFIX = "gAAAAA"


def generate_master_key() -> str:
    """Generate a new master encryption key.

    Returns:
        Base64-encoded 32-byte key suitable for Fernet
    """
    return Fernet.generate_key().decode()


class KeyMaterialEncryptor:
    """Encrypts and decrypts base58 secret keys using Fernet.

    Usage:
        encryptor = KeyMaterialEncryptor(master_key)
        sealed = encryptor.encrypt(secret)
        secret = encryptor.decrypt(sealed)
    """

    def __init__(self, master_key: str):
        """Initialize with master encryption key.

        Args:
            master_key: Base64-encoded Fernet key (32 bytes)

        Raises:
            ConfigurationError: If the key is not a valid Fernet key
        """
        try:
            self._fernet = Fernet(master_key.encode())
        except (ValueError, TypeError) as e:
            raise ConfigurationError(f"Invalid master key: {e}") from None

    def encrypt(self, secret: str) -> str:
        return self._fernet.encrypt(secret.encode()).decode()

    def decrypt(self, sealed: str) -> str:
        """Decrypt sealed key material.

        Raises:
            SigningError: If decryption fails (wrong key or corrupted data)
        """
        try:
            return self._fernet.decrypt(sealed.encode()).decode()
        except InvalidToken:
            raise SigningError("Sealed key material could not be decrypted") from None

    def rotate_key(self, new_key: str, sealed: str) -> str:
        """Re-encrypt sealed key material under a new master key."""
        return KeyMaterialEncryptor(new_key).encrypt(self.decrypt(sealed))


def get_encryptor(master_key: Optional[str] = None) -> Optional[KeyMaterialEncryptor]:
    """Get encryptor for a master key, falling back to settings.

    Returns:
        KeyMaterialEncryptor if a master key is available, None otherwise
    """
    if master_key is None:
        from splcustody.config import get_settings

        configured = get_settings().master_key
        master_key = configured.get_secret_value() if configured else None

    if not master_key:
        return None

    return KeyMaterialEncryptor(master_key)


def is_sealed(value: str) -> bool:
    return value.startswith(FERNET_PREFIX)


def seal_secret(secret: str, encryptor: Optional[KeyMaterialEncryptor]) -> str:
    """Seal a secret if an encryptor is configured, otherwise return it as-is."""
    if encryptor is None:
        return secret
    return encryptor.encrypt(secret)


def unseal_secret(value: str, encryptor: Optional[KeyMaterialEncryptor]) -> str:
    """Reverse seal_secret.

    Unsealed values are returned unchanged.

    Raises:
        ConfigurationError: If the value is sealed and no master key is set
        SigningError: If the value cannot be decrypted
    """
    if not is_sealed(value):
        return value

    if encryptor is None:
        raise ConfigurationError("Key material is sealed but no master key is configured")

    return encryptor.decrypt(value)
