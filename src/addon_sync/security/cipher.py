"""
Credential cipher — Fernet encryption under a master-password session key.

The session key is derived with PBKDF2-HMAC-SHA256 from the master password
and a per-installation salt. Until ``unlock`` succeeds every encrypt/decrypt
raises ``LockedError``.
"""

import base64
import hashlib
import hmac
import logging
import os

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from addon_sync.errors import AddonSyncError, LockedError

logger = logging.getLogger(__name__)

KDF_ITERATIONS = 390_000
SALT_BYTES = 16
MIN_PASSWORD_LENGTH = 8


def generate_salt() -> bytes:
    return os.urandom(SALT_BYTES)


def derive_key(password: str, salt: bytes, iterations: int = KDF_ITERATIONS) -> bytes:
    kdf = PBKDF2HMAC(algorithm=hashes.SHA256(), length=32, salt=salt, iterations=iterations)
    return base64.urlsafe_b64encode(kdf.derive(password.encode("utf-8")))


def password_check(key: bytes) -> str:
    """Verifier stored next to the salt; reveals nothing about the key itself."""
    return hashlib.sha256(b"addon-sync:verify:" + key).hexdigest()


class FernetCipher:
    """``CredentialCipher`` bound to a session key."""

    def __init__(self, salt: bytes, verifier: str | None = None, iterations: int = KDF_ITERATIONS):
        self.salt = salt
        self.verifier = verifier
        self.iterations = iterations
        self._fernet: Fernet | None = None

    @property
    def is_locked(self) -> bool:
        return self._fernet is None

    def setup(self, password: str) -> str:
        """Set the master password for the first time. Returns the verifier to store."""
        if len(password) < MIN_PASSWORD_LENGTH:
            raise AddonSyncError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
        key = derive_key(password, self.salt, self.iterations)
        self.verifier = password_check(key)
        self._fernet = Fernet(key)
        return self.verifier

    def unlock(self, password: str) -> bool:
        key = derive_key(password, self.salt, self.iterations)
        if self.verifier is not None and not hmac.compare_digest(password_check(key), self.verifier):
            logger.warning("Master password rejected")
            return False
        self._fernet = Fernet(key)
        return True

    def lock(self) -> None:
        self._fernet = None

    def _require(self) -> Fernet:
        if self._fernet is None:
            raise LockedError("App is locked")
        return self._fernet

    async def encrypt(self, plaintext: str) -> str:
        return self._require().encrypt(plaintext.encode("utf-8")).decode("ascii")

    async def decrypt(self, ciphertext: str) -> str:
        try:
            return self._require().decrypt(ciphertext.encode("ascii")).decode("utf-8")
        except InvalidToken as e:
            raise AddonSyncError("Failed to decrypt credential") from e
