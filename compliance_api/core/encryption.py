"""Symmetric encryption for OAuth secrets stored at rest."""

import logging
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from compliance_api.core.settings import settings

logger = logging.getLogger(__name__)


class TokenDecryptionError(Exception):
    """Raised when a stored value cannot be decrypted with the current key."""


class TokenCipher:
    """Fernet wrapper used for client secrets, access and refresh tokens."""

    def __init__(self, key: str | bytes):
        if isinstance(key, str):
            key = key.encode()
        self._fernet = Fernet(key)

    @classmethod
    def from_settings(cls) -> "TokenCipher":
        key = settings.TOKEN_ENCRYPTION_KEY
        if not key:
            # Tokens written with an ephemeral key are unreadable after restart
            logger.warning(
                "No TOKEN_ENCRYPTION_KEY configured. Using an ephemeral key; "
                "stored Xero tokens will not survive a restart."
            )
            return cls(Fernet.generate_key())
        return cls(key)

    def encrypt(self, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return self._fernet.encrypt(value.encode()).decode()

    def decrypt(self, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        try:
            return self._fernet.decrypt(value.encode()).decode()
        except InvalidToken as e:
            raise TokenDecryptionError("Stored credential could not be decrypted") from e
