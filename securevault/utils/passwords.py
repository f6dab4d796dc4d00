"""
Password Generation
===================

Random passwords for new credential entries.
"""

from __future__ import annotations

import secrets
import string
from typing import Final

PASSWORD_ALPHABET: Final[str] = string.ascii_letters + string.digits + "!@#$%^&*"
DEFAULT_PASSWORD_LENGTH: Final[int] = 16


def generate_password(
    length: int = DEFAULT_PASSWORD_LENGTH,
    alphabet: str = PASSWORD_ALPHABET,
) -> str:
    """
    Generate a password from a CSPRNG.

    Args:
        length: Number of characters (at least 1)
        alphabet: Characters to draw from

    Raises:
        ValueError: If length is not positive or alphabet is empty
    """
    if length < 1:
        raise ValueError("Password length must be positive")
    if not alphabet:
        raise ValueError("Alphabet cannot be empty")
    return "".join(secrets.choice(alphabet) for _ in range(length))
