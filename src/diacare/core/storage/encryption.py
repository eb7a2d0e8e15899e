"""Fernet encryption for the free-text note attached to a glucose reading.

A note can hold anything the user typed, so only its ciphertext reaches
SQLite. Numeric columns are left in the clear for range queries.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from cryptography.fernet import Fernet, InvalidToken

from diacare.core.errors import EncryptionError

logger = logging.getLogger(__name__)


class FieldEncryptor:
    """Symmetric text cipher around a single Fernet key.

    ``None`` maps to ``""`` and back, so a reading without a note stores no
    ciphertext at all.

    Usage::

        notes = FieldEncryptor(key)
        token = notes.encrypt("felt dizzy after lunch")
        notes.decrypt(token)  # "felt dizzy after lunch"
    """

    def __init__(self, key: str) -> None:
        if not key or not key.strip():
            raise EncryptionError("Encryption key must not be empty")
        try:
            self._fernet = Fernet(key.strip().encode("ascii"))
        except (ValueError, TypeError) as exc:
            raise EncryptionError(f"Invalid encryption key: {exc}") from exc

    def encrypt(self, text: str | None) -> str:
        if text is None:
            return ""
        if not isinstance(text, str):
            raise EncryptionError(f"Only text can be encrypted, got {type(text).__name__}")
        return self._fernet.encrypt(text.encode("utf-8")).decode("ascii")

    def decrypt(self, token: str | None) -> str | None:
        """Recover the note behind ``token``; a tampered token or the wrong key raises."""
        if not token:
            return None
        try:
            return self._fernet.decrypt(token.encode("ascii")).decode("utf-8")
        except InvalidToken as exc:
            raise EncryptionError("Decryption failed: invalid token or wrong key") from exc
        except (UnicodeError, TypeError) as exc:
            raise EncryptionError(f"Decryption failed: {exc}") from exc

    @staticmethod
    def generate_key() -> str:
        return Fernet.generate_key().decode("ascii")


def load_or_create_key(key_path: str | Path) -> str:
    """Return the Fernet key stored at ``key_path``, creating it on first use.

    The key file is written with ``0600`` permissions. Losing it makes stored
    notes unreadable, so it is never rotated implicitly.
    """
    path = Path(key_path).expanduser()
    if path.exists():
        key = path.read_text(encoding="utf-8").strip()
        if not key:
            raise EncryptionError(f"Key file {path} is empty")
        return key

    path.parent.mkdir(parents=True, exist_ok=True)
    key = FieldEncryptor.generate_key()
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        f.write(key)
    logger.warning("Generated new encryption key at %s; back this file up", path)
    return key
