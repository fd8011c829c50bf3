"""
Directory module for Guardian - the shared tenant catalog.

Maps each tenant id to its storage location and keeps tenant metadata
(status, display name, admin flag, preferences).
"""

from .catalog import TenantDirectory

__all__ = ["TenantDirectory"]
