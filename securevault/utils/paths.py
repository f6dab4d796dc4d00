"""
Path Utilities
==============

OS-aware file helpers used by the key store and the vault store.
"""

from __future__ import annotations

import os
import platform
import re
import tempfile
from pathlib import Path
from typing import Final

# Characters not allowed in filenames across all platforms
_UNSAFE_CHARS: Final[re.Pattern[str]] = re.compile(r'[<>:"/\\|?*\x00-\x1f]')


def _is_windows() -> bool:
    return platform.system().lower() == "windows"


def sanitize_filename(filename: str, replacement: str = "_") -> str:
    """
    Sanitize a filename by removing potentially dangerous characters.

    Args:
        filename: The filename to sanitize
        replacement: Character to replace unsafe chars with

    Returns:
        Sanitized filename safe for all platforms
    """
    if not filename:
        raise ValueError("Filename cannot be empty")

    sanitized = _UNSAFE_CHARS.sub(replacement, filename)
    sanitized = sanitized.strip(". ")

    if not sanitized:
        raise ValueError("Filename becomes empty after sanitization")

    return sanitized[:200]


def ensure_private_dir(directory: Path) -> Path:
    """
    Create a directory (and parents) readable only by the owner.

    Only components created here are made owner-only; directories that
    already exist keep their permissions.

    Returns:
        The directory path
    """
    missing = []
    current = directory
    while not current.exists():
        missing.append(current)
        if current.parent == current:
            break
        current = current.parent

    for component in reversed(missing):
        try:
            component.mkdir(mode=0o700)
        except FileExistsError:
            continue
        # mkdir mode is filtered by the umask
        if not _is_windows():
            component.chmod(0o700)

    if not directory.is_dir():
        raise NotADirectoryError(str(directory))
    return directory


def write_file_atomic(path: Path, data: bytes, mode: int = 0o600) -> None:
    """
    Write bytes so that readers see either the old or the new content.

    The data is flushed to a temporary file in the same directory, synced,
    and moved over the target with os.replace.
    """
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        if not _is_windows():
            tmp_path.chmod(mode)
        os.replace(tmp_path, path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise
