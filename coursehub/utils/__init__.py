"""Utility functions."""

from coursehub.utils.audit import log_action
from coursehub.utils.money import from_cents, to_cents, to_money
from coursehub.utils.password import hash_password, verify_password

__all__ = [
    "hash_password",
    "verify_password",
    "log_action",
    "to_money",
    "to_cents",
    "from_cents",
]
