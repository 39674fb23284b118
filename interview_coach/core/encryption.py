"""Encryption of locally stored sessions using Fernet symmetric encryption."""
import base64
import hashlib
from typing import Optional

from cryptography.fernet import Fernet

from interview_coach.config import settings


def derive_key(passphrase: str) -> bytes:
    """Derive a Fernet key (urlsafe base64 of 32 bytes) from a passphrase."""
    digest = hashlib.sha256(passphrase.encode()).digest()
    return base64.urlsafe_b64encode(digest)


class SessionEncryption:
    """Fernet cipher for the serialized session kept in the guest slot."""

    def __init__(self, passphrase: Optional[str] = None):
        """
        Args:
            passphrase: Deployment-wide secret, SESSION_ENCRYPTION_KEY when omitted

        Raises:
            ValueError: The passphrase is empty
        """
        passphrase = settings.SESSION_ENCRYPTION_KEY if passphrase is None else passphrase
        if not passphrase:
            raise ValueError("SESSION_ENCRYPTION_KEY must not be empty")
        self.cipher = Fernet(derive_key(passphrase))

    def encrypt(self, plaintext: str) -> str:
        """Fernet token of the text. Empty text stays empty."""
        return self.cipher.encrypt(plaintext.encode()).decode() if plaintext else ""

    def decrypt(self, ciphertext: str) -> str:
        """
        Raises:
            cryptography.fernet.InvalidToken: Not a token made with this passphrase
        """
        return self.cipher.decrypt(ciphertext.encode()).decode() if ciphertext else ""


_encryptor: Optional[SessionEncryption] = None


def get_encryptor() -> SessionEncryption:
    """Shared cipher built from settings on first use."""
    global _encryptor
    if _encryptor is None:
        _encryptor = SessionEncryption()
    return _encryptor
