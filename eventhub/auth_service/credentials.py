"""
Credential store: Argon2 hashing for passwords and refresh tokens.
"""

from typing import Optional

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

ph = PasswordHasher()


def hash_password(password: str) -> str:
    return ph.hash(password)


def verify_password(password_hash: Optional[str], password: str) -> bool:
    """
    Check a password against its stored hash.

    Returns False instead of raising on a mismatch or a corrupt hash.
    """
    if not password_hash:
        return False
    try:
        return ph.verify(password_hash, password)
    except (VerificationError, InvalidHashError):
        return False


def hash_refresh_token(token: str) -> str:
    return ph.hash(token)


def verify_refresh_token(token_hash: Optional[str], token: str) -> bool:
    """
    Check a presented refresh token against the hash stored on the user.
    A user without a stored hash (logged out) never matches.
    """
    return verify_password(token_hash, token)
