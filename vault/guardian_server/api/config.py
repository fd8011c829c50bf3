"""
Configuration for the Guardian HTTP API.

Uses pydantic-settings for environment variable loading.
"""

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """HTTP API configuration loaded from environment."""

    # Identity header set by the upstream authentication proxy
    tenant_header: str = Field(default="X-Tenant-ID", description="Header carrying the tenant id")

    # First-run setup
    admin_setup_code: str | None = Field(
        default=None,
        description="Code required to register the first (administrator) tenant",
    )

    # CORS settings
    cors_origins: list[str] = Field(
        default=["http://localhost:5173", "http://localhost:1420"],
        description="Allowed CORS origins",
    )

    model_config = {"env_prefix": "GUARDIAN_"}
