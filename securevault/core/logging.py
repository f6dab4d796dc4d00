"""
Secure Logging Module
=====================

Security-aware logging for the vault.

Security Features:
- Automatic secret/sensitive data filtering
- Rotating log files with size limits
- Log directory created owner-only
- Components log ids, kinds and counts only, never field values
"""

from __future__ import annotations

import logging
import re
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Final, Optional, Pattern

from securevault.core.config import LoggingConfig
from securevault.utils.paths import ensure_private_dir

ROOT_LOGGER_NAME: Final[str] = "securevault"

# Patterns for sensitive data detection
_SENSITIVE_PATTERNS: Final[list[tuple[str, Pattern[str]]]] = [
    ("password", re.compile(r'(?i)(password|passwd|pwd)\s*[=:]\s*["\']?[^\s"\']+["\']?')),
    ("token", re.compile(r'(?i)(token|bearer)\s*[=:]\s*["\']?[^\s"\']+["\']?')),
    ("secret", re.compile(r'(?i)(secret|private[_-]?key|master[_-]?key)\s*[=:]\s*["\']?[^\s"\']+["\']?')),
    # Base64 encoded key material
    ("base64_secret", re.compile(r'[A-Za-z0-9+/]{40,}={0,2}')),
    # Hex encoded key material
    ("hex_secret", re.compile(r'(?i)(?:0x)?[a-f0-9]{48,}')),
]

_REDACTED_TEXT: Final[str] = "[REDACTED]"


class SecureLogFilter(logging.Filter):
    """
    Log filter that removes sensitive information from log messages.

    Matches are replaced with `<name>=[REDACTED]`. Records are always
    kept, only sanitized.
    """

    def __init__(self, name: str = "", additional_patterns: Optional[list[Pattern[str]]] = None) -> None:
        super().__init__(name)
        self._additional_patterns = additional_patterns or []

    def filter(self, record: logging.LogRecord) -> bool:
        if record.msg and isinstance(record.msg, str):
            record.msg = self._sanitize(record.msg)

        if record.args:
            if isinstance(record.args, dict):
                record.args = {k: self._sanitize(v) if isinstance(v, str) else v
                               for k, v in record.args.items()}
            elif isinstance(record.args, tuple):
                record.args = tuple(
                    self._sanitize(arg) if isinstance(arg, (str, bytes)) else arg
                    for arg in record.args
                )

        return True

    def _sanitize(self, text: str | bytes) -> str:
        """Remove sensitive data from text."""
        result = text.hex() if isinstance(text, bytes) else text

        for name, pattern in _SENSITIVE_PATTERNS:
            result = pattern.sub(f"{name}={_REDACTED_TEXT}", result)

        for pattern in self._additional_patterns:
            result = pattern.sub(_REDACTED_TEXT, result)

        return result


class SecureRotatingFileHandler(RotatingFileHandler):
    """Rotating file handler that creates its directory owner-only."""

    def __init__(
        self,
        filename: str | Path,
        maxBytes: int = 10 * 1024 * 1024,
        backupCount: int = 5,
        encoding: str = "utf-8",
    ) -> None:
        log_path = Path(filename).resolve()
        ensure_private_dir(log_path.parent)

        super().__init__(
            str(log_path),
            mode="a",
            maxBytes=maxBytes,
            backupCount=backupCount,
            encoding=encoding,
        )


def configure_logging(
    config: Optional[LoggingConfig] = None,
    log_dir: Optional[Path] = None,
) -> logging.Logger:
    """
    Configure the `securevault` logger hierarchy.

    Call once at application startup. Component loggers
    (`securevault.store`, `securevault.keys`, ...) inherit these handlers.

    Args:
        config: Logging settings (defaults if omitted)
        log_dir: Directory for the rotating log file; no file if omitted

    Returns:
        The configured `securevault` logger
    """
    config = config or LoggingConfig()
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(getattr(logging, config.level.upper()))

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    secure_filter = SecureLogFilter()

    if config.enable_console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(logging.Formatter(config.format, datefmt="%H:%M:%S"))
        console_handler.addFilter(secure_filter)
        logger.addHandler(console_handler)

    if config.enable_file and log_dir is not None:
        file_handler = SecureRotatingFileHandler(
            filename=log_dir / "securevault.log",
            maxBytes=config.max_file_size_bytes,
            backupCount=config.backup_count,
        )
        file_handler.setFormatter(logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | %(funcName)s:%(lineno)d | %(message)s",
            datefmt=config.date_format,
        ))
        file_handler.addFilter(secure_filter)
        logger.addHandler(file_handler)

    logger.propagate = False
    return logger
