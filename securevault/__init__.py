"""
SecureVault - Encrypted Personal Records Vault
==============================================

Local storage for credentials, keys and notes. Every title, secret and
metadata value is encrypted with AES-256-GCM under a single master key
held by a key store.

Security Notice:
- No secrets are logged
- Fail-closed design pattern
- All paths are OS-aware
"""

__version__ = "0.1.0"
__author__ = "SecureVault Team"

from securevault.core.config import SecureConfig
from securevault.core.logging import configure_logging
from securevault.vault import Vault

__all__ = ["SecureConfig", "configure_logging", "Vault", "__version__"]
