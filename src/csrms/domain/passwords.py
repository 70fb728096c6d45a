"""
Password hashing - bcrypt with constant-time verification.

Plaintext passwords never leave this module; callers only see hashes
and booleans.
"""

import bcrypt

# bcrypt only considers the first 72 bytes and rejects longer input.
_MAX_PASSWORD_BYTES = 72

# Pre-computed hash so that a lookup miss still pays for one bcrypt check.
_DUMMY_BCRYPT_HASH = bcrypt.hashpw(b"dummy_password_for_timing_safety", bcrypt.gensalt(10)).decode()


def _encode(password: str) -> bytes:
    return password.encode("utf-8")[:_MAX_PASSWORD_BYTES]


def hash_password(password: str, cost: int = 10) -> str:
    """Hash password using bcrypt with the given cost factor (>= 10)."""
    return bcrypt.hashpw(_encode(password), bcrypt.gensalt(rounds=cost)).decode()


def check_password(password: str, password_hash: str | None) -> bool:
    """
    Compare a plaintext password against a stored hash.

    A missing hash is compared against a dummy hash so the call takes
    the same time whether or not the account exists.
    """
    if password_hash is None:
        bcrypt.checkpw(_encode(password), _DUMMY_BCRYPT_HASH.encode())
        return False
    return bcrypt.checkpw(_encode(password), password_hash.encode())
