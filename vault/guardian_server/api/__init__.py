"""
API module for Guardian - the HTTP surface bound to VaultService.

Invariants:
    - Every vault route resolves the caller through the Authenticator
    - Storage failures never leak engine details to clients
"""

from .app import create_app
from .auth import Authenticator, HeaderAuthenticator
from .config import Settings

__all__ = ["create_app", "Authenticator", "HeaderAuthenticator", "Settings"]
