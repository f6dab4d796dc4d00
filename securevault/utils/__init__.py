"""
Utils module - Utility functions and helpers.
"""

from securevault.utils.passwords import generate_password
from securevault.utils.paths import (
    ensure_private_dir,
    sanitize_filename,
    write_file_atomic,
)

__all__ = [
    "ensure_private_dir",
    "generate_password",
    "sanitize_filename",
    "write_file_atomic",
]
