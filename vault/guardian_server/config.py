"""
Configuration management for the Guardian sync server.

All core configuration is done via environment variables. This module
provides typed configuration classes with validation. HTTP-facing
settings (CORS, tenant header, setup code) live in api/config.py.

Invariants:
    - All settings have sensible defaults for local development
    - The data root holds the catalog and every tenant store
    - Secrets are never logged or exposed in error messages

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Keep from_env() and the dataclass defaults in sync
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass(frozen=True)
class StorageConfig:
    """Local storage configuration.

    Attributes:
        data_dir: Directory for the catalog and tenant SQLite databases
        catalog_filename: File name of the shared catalog database
        wal_mode: SQLite WAL mode enabled
        busy_timeout_ms: SQLite busy timeout in milliseconds
        cache_size_pages: SQLite cache size in pages (negative = KB)
    """

    data_dir: str = "./data"
    catalog_filename: str = "system.db"
    wal_mode: bool = True
    busy_timeout_ms: int = 10000
    cache_size_pages: int = -16000  # 16MB

    @classmethod
    def from_env(cls) -> StorageConfig:
        """Load configuration from environment variables."""
        return cls(
            data_dir=os.getenv("DATA_DIR", "./data"),
            catalog_filename=os.getenv("CATALOG_FILENAME", "system.db"),
            wal_mode=_env_bool("SQLITE_WAL_MODE", "true"),
            busy_timeout_ms=int(os.getenv("SQLITE_BUSY_TIMEOUT_MS", "10000")),
            cache_size_pages=int(os.getenv("SQLITE_CACHE_SIZE", "-16000")),
        )


@dataclass(frozen=True)
class CheckpointConfig:
    """Checkpoint sweeper configuration.

    Attributes:
        enabled: Whether the periodic sweeper runs
        interval_seconds: Interval between sweeps
    """

    enabled: bool = True
    interval_seconds: float = 300.0  # 5 minutes

    @classmethod
    def from_env(cls) -> CheckpointConfig:
        """Load configuration from environment variables."""
        return cls(
            enabled=_env_bool("CHECKPOINT_ENABLED", "true"),
            interval_seconds=float(os.getenv("CHECKPOINT_INTERVAL_SECONDS", "300")),
        )


@dataclass(frozen=True)
class HttpConfig:
    """HTTP server configuration.

    Attributes:
        host: Address to bind
        port: Port to listen on
        shutdown_grace_seconds: How long in-flight requests may run after
            a shutdown signal before handles are force-closed
    """

    host: str = "0.0.0.0"
    port: int = 8080
    shutdown_grace_seconds: int = 10

    @classmethod
    def from_env(cls) -> HttpConfig:
        """Load configuration from environment variables."""
        return cls(
            host=os.getenv("HTTP_HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", os.getenv("HTTP_PORT", "8080"))),
            shutdown_grace_seconds=int(os.getenv("SHUTDOWN_GRACE_SECONDS", "10")),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "text"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "text"),
        )


@dataclass
class ServerConfig:
    """Complete server configuration.

    Attributes:
        storage: Local storage configuration
        checkpoint: Checkpoint sweeper configuration
        http: HTTP server configuration
        observability: Logging configuration
    """

    storage: StorageConfig = field(default_factory=StorageConfig)
    checkpoint: CheckpointConfig = field(default_factory=CheckpointConfig)
    http: HttpConfig = field(default_factory=HttpConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> ServerConfig:
        """Load complete configuration from environment variables.

        Raises:
            ValueError: If configuration is invalid.
        """
        config = cls(
            storage=StorageConfig.from_env(),
            checkpoint=CheckpointConfig.from_env(),
            http=HttpConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )
        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if not self.storage.data_dir:
            raise ValueError("DATA_DIR must not be empty")
        if os.sep in self.storage.catalog_filename:
            raise ValueError("CATALOG_FILENAME must be a bare file name")
        if self.checkpoint.enabled and self.checkpoint.interval_seconds <= 0:
            raise ValueError("CHECKPOINT_INTERVAL_SECONDS must be positive")
        if self.http.shutdown_grace_seconds < 0:
            raise ValueError("SHUTDOWN_GRACE_SECONDS must not be negative")
        if self.observability.log_format not in ("json", "text"):
            raise ValueError(
                f"Invalid LOG_FORMAT '{self.observability.log_format}'. Must be one of: json, text"
            )

        if not os.path.exists(self.storage.data_dir):
            logger.warning(
                f"Data directory does not exist: {self.storage.data_dir}. "
                "It will be created on startup."
            )

    def log_config(self) -> None:
        """Log configuration."""
        logger.info(
            "Server configuration loaded",
            extra={
                "data_dir": self.storage.data_dir,
                "wal_mode": self.storage.wal_mode,
                "checkpoint_enabled": self.checkpoint.enabled,
                "checkpoint_interval_seconds": self.checkpoint.interval_seconds,
                "http_bind": f"{self.http.host}:{self.http.port}",
                "log_level": self.observability.log_level,
            },
        )
