"""
Storage abstraction layer for CertChain.

This package provides a pluggable storage backend system for certificate
records and chain blocks:

- SQLite (default, a single database file)
- PostgreSQL (for shared deployments)
- Memory (for testing)

Usage:
    from storage import get_storage_backend

    storage = get_storage_backend(config)
    certificate_id = storage.save_certificate(certificate)
    storage.save_block(block)
"""

from typing import TYPE_CHECKING

from storage.base import (
    DuplicateCertificateError,
    StorageBackend,
    StorageConnectionError,
    StorageError,
    StorageReadError,
    StorageWriteError,
)
from storage.memory import MemoryStorage
from storage.sqlite import SQLiteStorage

# Lazy import for PostgreSQL to avoid requiring psycopg2
if TYPE_CHECKING:
    from config import ServerConfig
    from storage.postgresql import PostgreSQLStorage

__all__ = [
    "DuplicateCertificateError",
    "MemoryStorage",
    "SQLiteStorage",
    "StorageBackend",
    "StorageConnectionError",
    "StorageError",
    "StorageReadError",
    "StorageWriteError",
    "get_storage_backend",
]


def get_storage_backend(config: "ServerConfig | None" = None) -> StorageBackend:
    """
    Get the storage backend selected by configuration.

    Args:
        config: Server configuration; read from the environment when omitted

    Returns:
        Configured StorageBackend instance

    Raises:
        StorageError: If the backend is unknown or misconfigured
    """
    if config is None:
        from config import ServerConfig

        config = ServerConfig.from_env()

    backend_type = config.storage_backend.lower()

    if backend_type == "sqlite":
        return SQLiteStorage(config.database_path)

    elif backend_type == "postgresql" or backend_type == "postgres":
        if not config.database_url:
            raise StorageError("DATABASE_URL environment variable required for PostgreSQL backend")
        from storage.postgresql import PostgreSQLStorage

        return PostgreSQLStorage(config.database_url)

    elif backend_type == "memory":
        return MemoryStorage()

    else:
        raise StorageError(f"Unknown storage backend: {backend_type}")
