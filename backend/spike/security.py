"""
Spike Server — Password Hashing
================================

What:  bcrypt hashing and verification for user passwords.
How:   Salted bcrypt with the library default cost (12). bcrypt only looks at the
       first 72 bytes of a password, which is why registration caps passwords
       at 72 characters.
Who:   UserService (register, login).

Both functions are CPU-bound (~100ms+); async callers run them through
`asyncio.to_thread`.
"""

import logging
from typing import Optional

import bcrypt

logger = logging.getLogger(__name__)

BCRYPT_ROUNDS = 12
BCRYPT_MAX_BYTES = 72


def _secret(password: str) -> bytes:
    # bcrypt ignores (newer releases reject) input past 72 bytes
    return password.encode("utf-8")[:BCRYPT_MAX_BYTES]


def hash_password(password: str, rounds: Optional[int] = None) -> str:
    """Hash a plaintext password; returns the `$2b$...` string to store."""
    salt = bcrypt.gensalt(rounds=rounds or BCRYPT_ROUNDS)
    return bcrypt.hashpw(_secret(password), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """
    Constant-time comparison of a plaintext password against a stored hash.

    A malformed stored hash is treated as a mismatch (and logged), so a bad
    row can never authenticate.
    """
    try:
        return bcrypt.checkpw(_secret(password), password_hash.encode("utf-8"))
    except ValueError as e:
        logger.warning("Stored password hash is malformed: %s", e)
        return False
