"""Password hashing and session tokens.

Passwords are hashed with bcrypt (per-hash salt embedded in the hash string).
Session tokens are random URL-safe strings; only their SHA-256 digest is stored.
"""

from __future__ import annotations

import hashlib
import secrets

import bcrypt

# bcrypt only looks at the first 72 bytes of input.
_BCRYPT_MAX_BYTES = 72


def _encode(password: str) -> bytes:
    return password.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def hash_password(password: str, *, rounds: int = 12) -> str:
    """Return a salted bcrypt hash of ``password``."""
    return bcrypt.hashpw(_encode(password), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(password: str, hashed: str) -> bool:
    """Check ``password`` against a bcrypt hash in constant time."""
    try:
        return bcrypt.checkpw(_encode(password), hashed.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


def dummy_hash(*, rounds: int = 12) -> str:
    """A throwaway hash used to keep failed lookups as slow as real checks."""
    return hash_password(secrets.token_hex(16), rounds=rounds)


def new_session_token() -> str:
    return secrets.token_urlsafe(32)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()
