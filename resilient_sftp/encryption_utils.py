import base64
import logging

import keyring
from keyring.errors import KeyringError
from cryptography.fernet import Fernet, InvalidToken

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# --- Constants for Keyring Service ---
# These identify the application to the OS keychain.
KEYRING_SERVICE_NAME = "resilient-sftp"
KEYRING_USERNAME = "encryption_key"

# The prefix to identify encrypted values in the config file.
ENCRYPTION_PREFIX = "ENC:"


def _get_encryption_key() -> bytes:
    """
    Retrieves the encryption key from the OS keychain.
    If the key does not exist, it generates a new one, stores it,
    and returns it.
    """
    try:
        key_str = keyring.get_password(KEYRING_SERVICE_NAME, KEYRING_USERNAME)

        if key_str:
            logger.debug("Found existing encryption key in OS keychain.")
            return base64.urlsafe_b64decode(key_str)

        logger.info("No encryption key found. Generating a new one and storing it in the OS keychain.")
        new_key = Fernet.generate_key()
        keyring.set_password(KEYRING_SERVICE_NAME, KEYRING_USERNAME, base64.urlsafe_b64encode(new_key).decode('utf-8'))
        logger.info("A new encryption key has been securely stored.")
        return new_key
    except KeyringError as e:
        logger.error("Could not access the OS keychain.")
        logger.error("For headless Linux, you may need a DBus session and a supported backend like 'SecretService'.")
        raise ConfigurationError("Could not access the OS keychain", cause=e) from e


def is_encrypted(value: str) -> bool:
    return isinstance(value, str) and value.startswith(ENCRYPTION_PREFIX)


def encrypt_secret(secret: str) -> str:
    """
    Encrypts a secret (e.g. a private key passphrase) with the keychain key.
    Returns the encrypted data as a prefixed base64 string for config files.
    """
    if not secret:
        return ""

    f = Fernet(_get_encryption_key())
    encrypted_data = f.encrypt(secret.encode('utf-8'))
    return f"{ENCRYPTION_PREFIX}{base64.b64encode(encrypted_data).decode('utf-8')}"


def decrypt_secret(value: str) -> str:
    """
    Decrypts a prefixed value produced by `encrypt_secret`.
    Values without the prefix are returned unchanged.
    """
    if not is_encrypted(value):
        return value

    f = Fernet(_get_encryption_key())
    try:
        encrypted_data = base64.b64decode(value[len(ENCRYPTION_PREFIX):])
        return f.decrypt(encrypted_data).decode('utf-8')
    except (InvalidToken, ValueError) as e:
        logger.error("Decryption failed! The data may be corrupt or the encryption key has changed.")
        logger.error("This can happen if you moved the config file from another system.")
        raise ConfigurationError("Could not decrypt secret from configuration", cause=e) from e
