import copy
from typing import Any

from cryptography.fernet import Fernet, InvalidToken

MASK = "******"


def generate_key() -> str:
    """
    Generate a new encryption key.
    """
    return Fernet.generate_key().decode()


def encrypt_password(password: str, key: str) -> str:
    """
    Encrypt a password using a key.
    """
    cipher_suite = Fernet(key.encode())
    return cipher_suite.encrypt(password.encode()).decode()


def decrypt_password(token: str, key: str) -> str:
    """
    Decrypt a password produced by :func:`encrypt_password`.

    Raises ``ValueError`` if the key does not match the token.
    """
    cipher_suite = Fernet(key.encode())
    try:
        return cipher_suite.decrypt(token.encode()).decode()
    except InvalidToken:
        raise ValueError("password could not be decrypted with the configured key")


def sanitize_config(config: Any) -> Any:
    """
    Return a deep copy of the configuration with password and key fields masked.
    """
    def mask(item):
        if isinstance(item, dict):
            return {
                k: (MASK if ('pass' in k.lower() or 'key' in k.lower()) else mask(v))
                for k, v in item.items()
            }
        if isinstance(item, list):
            return [mask(i) for i in item]
        return item

    return mask(copy.deepcopy(config))
