"""
Password hashing for user accounts (bcrypt via passlib).
"""

from passlib.context import CryptContext

BCRYPT_ROUNDS = 12

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=BCRYPT_ROUNDS,
)


def hash_password(password: str) -> str:
    """Return a bcrypt hash of a plain-text password."""
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Check a plain-text password against a stored hash."""
    return pwd_context.verify(plain_password, hashed_password)


def password_needs_rehash(hashed_password: str) -> bool:
    """
    True when the stored hash uses outdated settings.

    Login re-hashes such passwords so the cost factor follows BCRYPT_ROUNDS.
    """
    return pwd_context.needs_update(hashed_password)
