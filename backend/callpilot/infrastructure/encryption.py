"""
Credential Encryption Service
Encrypts tenant secrets at rest using Fernet (AES-128-CBC + HMAC-SHA256).

- Fernet provides authenticated encryption with a random IV per call,
  so encrypting the same secret twice never yields the same ciphertext
- MultiFernet supports key rotation
- Keys come from settings/environment, never from the stored data
"""
import logging
from typing import List, Optional

from cryptography.fernet import Fernet, InvalidToken, MultiFernet

from callpilot.core.exceptions import CallPilotError, DecryptionError

logger = logging.getLogger(__name__)


class EncryptionError(CallPilotError):
    """Raised when keys cannot be loaded or a value cannot be encrypted"""
    pass


class CredentialEncryptionService:
    """
    Encrypt/decrypt tenant credentials using Fernet.

    Supports key rotation via MultiFernet:
    - New values are always encrypted with the current (first) key
    - Old values can be decrypted with any key in the chain

    Usage:
        service = CredentialEncryptionService(key)
        encrypted = service.encrypt("vonage-secret")
        decrypted = service.decrypt(encrypted)
    """

    def __init__(self, key: Optional[str] = None, old_keys: Optional[List[str]] = None):
        self._fernet: Optional[MultiFernet] = None
        self._initialize_keys(key, old_keys or [])

    def _initialize_keys(self, key: Optional[str], old_keys: List[str]) -> None:
        """Build the key chain, current key first."""
        current_key = key
        if not current_key:
            logger.warning(
                "ENCRYPTION_KEY not set! "
                "Using temporary key - stored tenant configs will not survive a restart"
            )
            current_key = Fernet.generate_key().decode()

        try:
            keys = [Fernet(current_key.encode() if isinstance(current_key, str) else current_key)]
            for old_key in old_keys:
                if old_key:
                    keys.append(Fernet(old_key.encode() if isinstance(old_key, str) else old_key))

            self._fernet = MultiFernet(keys)
            logger.info(f"Encryption service initialized with {len(keys)} key(s)")

        except (ValueError, TypeError) as e:
            raise EncryptionError(f"Failed to initialize encryption keys: {e}")

    def encrypt(self, plaintext: str) -> str:
        """
        Encrypt a secret string.

        Returns:
            URL-safe base64 ciphertext
        """
        if not plaintext:
            return ""

        try:
            return self._fernet.encrypt(plaintext.encode()).decode()
        except Exception as e:
            logger.error(f"Encryption failed: {type(e).__name__}")
            raise EncryptionError(f"Failed to encrypt value: {e}")

    def decrypt(self, ciphertext: str) -> str:
        """
        Decrypt a secret string.

        Raises:
            DecryptionError: If the value is garbled or was encrypted with an unknown key
        """
        if not ciphertext:
            return ""
        if not isinstance(ciphertext, str):
            logger.error(f"Decryption failed: expected a string token, got {type(ciphertext).__name__}")
            raise DecryptionError("Failed to decrypt value: not a token")

        try:
            return self._fernet.decrypt(ciphertext.encode()).decode()
        except InvalidToken:
            logger.error("Decryption failed: Invalid token or wrong key")
            raise DecryptionError("Failed to decrypt value: invalid token or key")
        except (ValueError, TypeError, UnicodeError) as e:
            logger.error(f"Decryption failed: {type(e).__name__}")
            raise DecryptionError(f"Failed to decrypt value: {e}")
