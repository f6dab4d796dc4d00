"""
Core module - Contains configuration, logging, errors and key handling.
"""

from securevault.core.config import SecureConfig
from securevault.core.logging import configure_logging, SecureLogFilter

__all__ = ["SecureConfig", "configure_logging", "SecureLogFilter"]
