"""Tests for the FieldEncryptor and key file handling."""

from __future__ import annotations

import os
import stat

import pytest
from cryptography.fernet import Fernet

from diacare.core.errors import EncryptionError, StorageError
from diacare.core.storage.encryption import FieldEncryptor, load_or_create_key


@pytest.fixture
def key() -> str:
    return Fernet.generate_key().decode()


@pytest.fixture
def encryptor(key: str) -> FieldEncryptor:
    return FieldEncryptor(key)


class TestRoundTrip:
    def test_note_round_trip(self, encryptor: FieldEncryptor):
        note = "felt dizzy after lunch"
        token = encryptor.encrypt(note)
        assert isinstance(token, str)
        assert note not in token
        assert encryptor.decrypt(token) == note

    def test_unicode_round_trip(self, encryptor: FieldEncryptor):
        note = "après le repas — 2 comprimés"
        assert encryptor.decrypt(encryptor.encrypt(note)) == note

    def test_null_round_trip(self, encryptor: FieldEncryptor):
        assert encryptor.encrypt(None) == ""
        assert encryptor.decrypt("") is None


class TestKeyValidation:
    def test_empty_key_raises(self):
        with pytest.raises(EncryptionError, match="must not be empty"):
            FieldEncryptor("")

    def test_whitespace_key_raises(self):
        with pytest.raises(EncryptionError, match="must not be empty"):
            FieldEncryptor("   ")

    def test_invalid_key_raises(self):
        with pytest.raises(EncryptionError, match="Invalid encryption key"):
            FieldEncryptor("not-a-valid-fernet-key")

    def test_encryption_error_is_storage_error(self):
        assert issubclass(EncryptionError, StorageError)


class TestCorruptData:
    def test_wrong_key_cannot_decrypt(self, encryptor: FieldEncryptor):
        token = encryptor.encrypt("secret")
        other = FieldEncryptor(Fernet.generate_key().decode())
        with pytest.raises(EncryptionError, match="invalid token"):
            other.decrypt(token)

    def test_garbage_token_raises(self, encryptor: FieldEncryptor):
        with pytest.raises(EncryptionError):
            encryptor.decrypt("not-a-valid-token")


class TestGenerateKey:
    def test_generates_valid_key(self):
        key = FieldEncryptor.generate_key()
        assert len(key) == 44  # base64-encoded 32 bytes
        enc = FieldEncryptor(key)
        assert enc.decrypt(enc.encrypt("x")) == "x"


class TestKeyFile:
    def test_creates_key_file_once(self, tmp_path):
        path = tmp_path / "keys" / "fernet.key"
        first = load_or_create_key(path)
        assert path.exists()
        assert load_or_create_key(path) == first
        FieldEncryptor(first)

    @pytest.mark.skipif(os.name != "posix", reason="POSIX permissions only")
    def test_key_file_is_owner_only(self, tmp_path):
        path = tmp_path / "fernet.key"
        load_or_create_key(path)
        assert stat.S_IMODE(path.stat().st_mode) == 0o600

    def test_empty_key_file_raises(self, tmp_path):
        path = tmp_path / "fernet.key"
        path.write_text("")
        with pytest.raises(EncryptionError, match="empty"):
            load_or_create_key(path)
