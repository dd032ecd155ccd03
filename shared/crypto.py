"""
Encryption of object store credentials at rest.

The config file keeps the access key pair Fernet-encrypted with a key
derived from machine-specific data, so copying the file to another machine
does not leak usable credentials.
"""

import base64
import getpass
import logging
import os
import socket
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

logger = logging.getLogger(__name__)

_MACHINE_SALT = b'mediavault-credentials-v1'
_KDF_ITERATIONS = 100000


class CredentialManager:
    """Manager for encrypting/decrypting stored credentials."""

    @staticmethod
    def generate_key_from_password(password: str, salt: bytes) -> bytes:
        """
        Derive a Fernet key from a password using PBKDF2-HMAC-SHA256.

        Args:
            password: Secret material
            salt: Salt bytes for key derivation

        Returns:
            URL-safe base64 encoded 32-byte key
        """
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=salt,
            iterations=_KDF_ITERATIONS,
        )
        return base64.urlsafe_b64encode(kdf.derive(password.encode()))

    @staticmethod
    def _machine_id() -> str:
        try:
            with open('/etc/machine-id', 'r') as f:
                return f.read().strip()
        except OSError:
            return os.getenv('HOSTNAME') or socket.gethostname() or 'default-machine'

    @staticmethod
    def generate_machine_key() -> bytes:
        """Key bound to this machine and user; no user input required."""
        try:
            username = getpass.getuser()
        except (KeyError, OSError):
            username = 'default-user'
        password = f"{CredentialManager._machine_id()}-{username}"
        return CredentialManager.generate_key_from_password(password, _MACHINE_SALT)

    @staticmethod
    def encrypt(data: str, key: Optional[bytes] = None) -> str:
        """Encrypt a string, using the machine key when none is given."""
        if key is None:
            key = CredentialManager.generate_machine_key()
        return Fernet(key).encrypt(data.encode()).decode()

    @staticmethod
    def decrypt(encrypted_data: str, key: Optional[bytes] = None) -> Optional[str]:
        """
        Decrypt a string produced by ``encrypt``.

        Returns:
            The plaintext, or None when the token is invalid for this key
        """
        if key is None:
            key = CredentialManager.generate_machine_key()
        try:
            return Fernet(key).decrypt(encrypted_data.encode()).decode()
        except (InvalidToken, ValueError) as e:
            logger.warning("Credential decryption failed: %s", e.__class__.__name__)
            return None
